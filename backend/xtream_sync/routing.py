"""Route normalized entries into output groups."""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .schemas import CatalogKind, Category, NormalizedEntry


AGGREGATE_GROUP_KEY = "All"
NO_CATEGORY_KEY = "No_Category"

_SAFE_PUNCTUATION = " -._()&+,"


def sanitize_group_key(name: str) -> str:
    """Return a filesystem-safe stem for a group key."""

    normalized = unicodedata.normalize("NFKC", name).strip()
    cleaned = "".join(c if c.isalnum() or c in _SAFE_PUNCTUATION else "_" for c in normalized)
    cleaned = cleaned.strip(" .")
    return cleaned or "Unnamed"


@dataclass(slots=True)
class Group:
    """Output unit that owns one playlist and one snapshot for the run."""

    key: str
    slug: str
    kind: CatalogKind
    entries: list[NormalizedEntry] = field(default_factory=list)
    accumulated_names: list[str] = field(default_factory=list)


class GroupRouter:
    """Assign entries of one catalog class to groups.

    In aggregate mode every entry lands in a single group keyed
    ``AGGREGATE_GROUP_KEY``. Otherwise groups are created lazily, one per
    sanitized category name; entries whose category id is unknown go to
    ``NO_CATEGORY_KEY``. Groups are never removed or merged once created.
    """

    def __init__(
        self,
        kind: CatalogKind,
        categories: Iterable[Category],
        *,
        aggregate: bool = False,
        on_create: Callable[[Group], None] | None = None,
    ) -> None:
        self.kind = kind
        self.aggregate = aggregate
        self._category_names = {category.id: category.name for category in categories}
        self._groups: dict[str, Group] = {}
        self._on_create = on_create

    @property
    def groups(self) -> list[Group]:
        """Groups in creation order."""

        return list(self._groups.values())

    def key_for(self, entry: NormalizedEntry) -> str:
        if self.aggregate:
            return AGGREGATE_GROUP_KEY
        name = self._category_names.get(entry.category_id)
        if name is None:
            return NO_CATEGORY_KEY
        return name

    def ensure_group(self, key: str) -> Group:
        """Return the group for ``key``, creating it on first use."""

        slug = sanitize_group_key(key)
        group = self._groups.get(slug)
        if group is None:
            group = Group(key=key, slug=slug, kind=self.kind)
            self._groups[slug] = group
            if self._on_create is not None:
                self._on_create(group)
        return group

    def ensure_category(self, category: Category) -> Group:
        if self.aggregate:
            return self.ensure_group(AGGREGATE_GROUP_KEY)
        return self.ensure_group(category.name)

    def route(self, entry: NormalizedEntry) -> Group:
        """Append ``entry`` to its group and return that group."""

        group = self.ensure_group(self.key_for(entry))
        group.entries.append(entry)
        return group
