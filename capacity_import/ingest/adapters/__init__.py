"""Adapters mapping parsed CSV tables onto typed import records."""
