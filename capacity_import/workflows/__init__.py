"""High-level import workflows composed from ingest, aggregation and validation."""
