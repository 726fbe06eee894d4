"""Generate CI pipeline definitions from repository inspection."""

__version__ = "0.1.0"
