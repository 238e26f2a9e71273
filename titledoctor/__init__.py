"""Title Doctor: emails improved YouTube title ideas for a channel's recent uploads."""

__version__ = "0.1.0"
