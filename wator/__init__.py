"""Wa-Tor predator-prey simulation with an animated GIF encoder."""

__version__ = "0.1.0"
__all__ = ["cell", "cli", "gifwriter", "grid", "palette"]