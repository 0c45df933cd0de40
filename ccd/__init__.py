"""Claude Context Daemon - session monitoring and smart context tracking."""

__version__ = "0.1.0"
