"""Typer command line interface for xtream-sync."""
