"""VoltWatch telemetry ingestion and rule evaluation backend."""

__version__ = "0.1.0"
