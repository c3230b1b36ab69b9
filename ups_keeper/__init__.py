"""ups-keeper: automation agent for a NUT-managed UPS."""

__version__ = "0.1.0"
