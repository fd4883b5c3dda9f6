"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
import uuid

from sqlalchemy import JSON, String

# Use JSON instead of JSONB for cross-database compatibility
JSONType = JSON

# Record ids are opaque strings: generated UUIDs for new rows, original keys
# for records imported from an existing store (e.g. "L-1", "v-2").
IdType = String(64)


def new_id() -> str:
    """Primary key default for every table."""
    return str(uuid.uuid4())
