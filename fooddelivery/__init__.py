"""Food delivery event relay services."""

__version__ = "1.0.0"
