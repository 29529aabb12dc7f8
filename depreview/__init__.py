"""depreview: review Cargo dependency upgrades before they land."""

__version__ = "0.1.0"
