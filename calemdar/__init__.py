"""Recurring-event expansion, Full Calendar translation, backups, actions and config."""

__version__ = "0.1.0"

__all__ = ["__version__"]