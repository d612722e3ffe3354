"""Persistence: ORM models, database lifecycle and shared queries."""
