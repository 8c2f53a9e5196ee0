"""Usage insights over conversation-session logs."""

__version__ = "0.1.0"
