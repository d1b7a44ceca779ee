"""ThoughtFolio: capture thoughts and surface them before the moments that need them."""

__version__ = "0.1.0"
