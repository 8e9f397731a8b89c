"""Interactive SSH shell with local get/put file transfer."""

__version__ = "1.0.0"
