"""Slashoor - beacon chain slashing watcher."""
