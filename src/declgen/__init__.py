"""declgen - Typed declaration generator for managed runtime metadata."""

__version__ = "0.1.0"
