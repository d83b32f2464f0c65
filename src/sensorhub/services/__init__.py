"""Business-logic layer for telemetry ingestion.

- device_registry.py / reading_store.py / alert_store.py (MongoDB-backed stores)
- alert_rules.py (pure threshold rule engine)
- ingestion_pipeline.py (per-reading unit of work)
- notifier.py (in-process fan-out to live subscribers)
"""

# Import side-effects are intentionally avoided here; modules are imported by routers/services as needed.
