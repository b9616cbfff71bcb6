"""
Service layer for the VoltWatch backend.

This package contains telemetry ingestion from MQTT, the telemetry and
rule stores, the periodic rule evaluation engine and the MQTT command
publisher used to drive actuators.
"""
