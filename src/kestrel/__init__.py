"""Kestrel: streaming tool-calling chat gateway."""

__all__ = ["__version__"]

__version__ = "0.3.0"
