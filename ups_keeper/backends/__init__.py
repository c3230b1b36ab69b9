"""UPS backend implementations."""

from .nut import NutBackend

__all__ = ["NutBackend"]
