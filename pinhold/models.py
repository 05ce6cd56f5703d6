"""
Database models for pinhold.

Uses Peewee ORM with SQLite. Stores the shadow level of every pin driven as
an output, and one marker per holder group recording the pid of the gpioset
process that holds it. WAL mode and a busy timeout let several invocations of
the host share the same store.
"""

import os
from datetime import datetime

from peewee import (
    AutoField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
)

database = DatabaseProxy()


def initialize_db(db_path) -> SqliteDatabase:
    """Initialize database connection and create tables."""
    os.makedirs(os.path.dirname(str(db_path)) or ".", exist_ok=True)
    db = SqliteDatabase(
        str(db_path),
        pragmas={
            "journal_mode": "wal",
            "cache_size": -16 * 1000,
            "busy_timeout": 5000,
        },
    )
    database.initialize(db)
    database.create_tables([ShadowLevel, HolderMarker], safe=True)
    return db


class BaseModel(Model):
    """Base model with common configuration."""

    class Meta:
        database = database


class ShadowLevel(BaseModel):
    """Last level commanded for an output pin."""

    id = AutoField()
    chip = CharField(index=True)
    pin = IntegerField()
    level = IntegerField()  # 0 or 1
    updated_at = DateTimeField(default=datetime.now)

    class Meta:
        table_name = "shadow_levels"
        indexes = ((("chip", "pin"), True),)


class HolderMarker(BaseModel):
    """Pid of the holder process driving a group of pins."""

    id = AutoField()
    chip = CharField(index=True)
    group_key = CharField()  # e.g. "5,6"
    pid = IntegerField()
    created_at = DateTimeField(default=datetime.now)

    class Meta:
        table_name = "holder_markers"
        indexes = ((("chip", "group_key"), True),)
