"""Health monitoring and alerting core."""

__version__ = "0.1.0"
