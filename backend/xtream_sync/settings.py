"""Runtime configuration for catalog sync runs."""
from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils.paths import default_history_database_url


EpisodeTitleFallback = Literal["series", "category", "none"]
SeasonOrder = Literal["lexicographic", "numeric"]


class SyncSettings(BaseSettings):
    """Environment-aware settings resolved once per run."""

    server: str = Field(..., description="Base URL of the content API, e.g. http://host:8080.")
    username: str = Field(..., description="Account username.")
    password: str = Field(..., description="Account password.")
    live: bool = Field(default=False, description="Process live channels.")
    vod: bool = Field(default=False, description="Process video-on-demand titles.")
    series: bool = Field(default=False, description="Process episodic series.")
    m3u: bool = Field(default=False, description="Write playlist files.")
    diff: bool = Field(default=False, description="Maintain snapshots and write diff reports.")
    single_m3u: bool = Field(
        default=False, description="Route every entry of a class into one aggregate group."
    )
    no_header: bool = Field(default=False, description="Do not write the #EXTM3U header line.")
    stream_extension: str = Field(
        default="", description="Suffix appended to URLs when a record carries no extension."
    )
    tvheadend_remux: bool = Field(
        default=False, description="Wrap playback URLs in an ffmpeg pipe for TVHeadend."
    )
    always_create: bool = Field(
        default=False, description="Create a playlist for every category, even empty ones."
    )
    output_dir: str = Field(default=".", description="Root directory for playlists and diffs.")
    episode_title_fallback: EpisodeTitleFallback = Field(
        default="series", description="Name used for episodes that have no title."
    )
    season_order: SeasonOrder = Field(
        default="lexicographic", description="Ordering applied to season keys."
    )
    history: bool = Field(default=False, description="Record added/deleted entries in SQLite.")
    history_database_url: str = Field(
        default_factory=default_history_database_url,
        description="Connection URL for the change history database.",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds.")

    model_config = SettingsConfigDict(
        env_prefix="XTREAM_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_outputs(self) -> "SyncSettings":
        if (self.live or self.vod) and not (self.m3u or self.diff):
            raise ValueError("You must enable m3u and/or diff when processing live or VOD")
        return self

    @property
    def base_url(self) -> str:
        return self.server.rstrip("/")
