"""Over-the-air update distribution server for Expo clients."""

__version__ = "0.1.0"
