"""Account registration and session lifecycle service for the QR ordering platform."""

__version__ = "1.0.0"
