"""
State migration system.
Creates the storage table and upgrades versioned state envelopes to the
current schema version when they are read.
"""
import logging
from typing import Callable, Dict, Tuple

from sqlalchemy import inspect

from touchwood.database import engine, Base
from touchwood import models  # noqa: F401  (registers StateRecord with Base)
from touchwood.constants import STATE_SCHEMA_VERSION

logger = logging.getLogger("touchwood.migrations")

# (key, from_version) -> function upgrading the payload to from_version + 1
Migration = Callable[[object], object]
_MIGRATIONS: Dict[Tuple[str, int], Migration] = {}


def register_migration(key: str, from_version: int):
    """
    Register an upgrade step for a state record.

    Args:
        key: State record key the step applies to
        from_version: Version the step upgrades from

    Returns:
        Decorator storing the function in the registry
    """
    def decorator(func: Migration) -> Migration:
        _MIGRATIONS[(key, from_version)] = func
        return func
    return decorator


def upgrade_payload(key: str, version: int, data: object) -> object:
    """
    Bring a decoded payload up to STATE_SCHEMA_VERSION.

    Args:
        key: State record key
        version: Version found in the stored envelope
        data: Decoded payload

    Returns:
        Payload at the current version

    Raises:
        ValueError: If the version is from the future or a step is missing
    """
    if version > STATE_SCHEMA_VERSION:
        raise ValueError(f"version {version} is newer than supported {STATE_SCHEMA_VERSION}")

    while version < STATE_SCHEMA_VERSION:
        step = _MIGRATIONS.get((key, version))
        if step is None:
            raise ValueError(f"no migration for '{key}' from version {version}")
        logger.info(f"Migrating state '{key}' from version {version} to {version + 1}")
        data = step(data)
        version += 1

    return data


def create_tables() -> None:
    """Create missing tables for registered models"""
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = set(inspect(engine).get_table_names()) - existing
    if created:
        logger.info(f"Created tables: {sorted(created)}")
