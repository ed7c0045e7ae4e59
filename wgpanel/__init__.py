"""Switch the active WireGuard configuration and restart its dependents."""

__version__ = "1.0.0"
