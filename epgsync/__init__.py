"""EPG sync service: reconciles fetched program guides into a program store."""

__version__ = "0.1.0"
