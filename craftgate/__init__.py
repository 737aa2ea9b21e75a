"""Fixed-window throttling for AI furniture image generation."""

__version__ = "0.1.0"
