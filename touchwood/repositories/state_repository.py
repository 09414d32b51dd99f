"""
State repository - Persistence layer for engine state.
Engines keep their state in memory and hand snapshots to this layer, which
encodes them as versioned JSON blobs in a key-value store.
"""
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, Protocol, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError
from sqlalchemy.orm import Session

from touchwood.constants import STATE_SCHEMA_VERSION
from touchwood.exceptions import StateCorruptedException
from touchwood.migrations import upgrade_payload
from touchwood.models import StateRecord

logger = logging.getLogger("touchwood.state")

T = TypeVar("T")


class PersistentStore(Protocol):
    """Key to serialized-value store"""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...


class MemoryStore:
    """Dictionary-backed store, used for previews and tests"""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def keys(self):
        return list(self._data.keys())


class SqlStateStore:
    """Store backed by the state_records table"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[bytes]:
        db = self.session_factory()
        try:
            record = db.query(StateRecord).filter(StateRecord.key == key).first()
            return record.value if record else None
        finally:
            db.close()

    def set(self, key: str, value: bytes) -> None:
        db = self.session_factory()
        try:
            record = db.query(StateRecord).filter(StateRecord.key == key).first()
            if record:
                record.value = value
                record.version = STATE_SCHEMA_VERSION
            else:
                db.add(StateRecord(key=key, value=value, version=STATE_SCHEMA_VERSION))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class WriteBehindStore:
    """
    Coalescing write queue in front of a slower store.

    set() only records the latest bytes for a key; flush() writes everything
    pending to the backing store. get() consults pending writes first so a
    read never observes an older value than the last set().
    """

    def __init__(self, backing: PersistentStore):
        self.backing = backing
        self._pending: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            if key in self._pending:
                return self._pending[key]
        return self.backing.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._pending[key] = value

    @property
    def pending_keys(self):
        with self._lock:
            return sorted(self._pending.keys())

    def flush(self) -> int:
        """
        Write all pending values to the backing store.

        Values that fail to write stay pending for the next flush.

        Returns:
            Number of keys written
        """
        with self._lock:
            batch = dict(self._pending)

        written = 0
        for key, value in batch.items():
            try:
                self.backing.set(key, value)
            except Exception as e:
                logger.error(f"Flush of '{key}' failed: {e}")
                continue

            with self._lock:
                # A newer set() may have replaced the value while writing
                if self._pending.get(key) is value:
                    del self._pending[key]
            written += 1

        if written:
            logger.debug(f"Flushed {written} state record(s)")
        return written


class StateRepository:
    """Encodes and decodes engine state through a PersistentStore"""

    def __init__(self, store: PersistentStore):
        self.store = store
        self._adapters: Dict[Any, TypeAdapter] = {}

    def _adapter(self, schema: Any) -> TypeAdapter:
        adapter = self._adapters.get(schema)
        if adapter is None:
            adapter = TypeAdapter(schema)
            self._adapters[schema] = adapter
        return adapter

    def _decode(self, key: str, raw: bytes, schema: Any) -> Any:
        try:
            envelope = json.loads(raw)
            version = int(envelope["version"])
            data = upgrade_payload(key, version, envelope["data"])
            return self._adapter(schema).validate_python(data)
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise StateCorruptedException(key, str(e)) from e

    def load(self, key: str, schema: Any, default: Callable[[], T]) -> T:
        """
        Load a state record.

        Missing or unreadable records yield the default state; a corrupted
        record is logged and otherwise ignored.

        Args:
            key: State record key
            schema: Type the payload validates against
            default: Factory for the empty state

        Returns:
            Decoded state or the default
        """
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.error(f"Reading state '{key}' failed, starting empty: {e}")
            return default()

        if raw is None:
            return default()

        try:
            return self._decode(key, raw, schema)
        except StateCorruptedException as e:
            logger.warning(f"{e}; falling back to defaults")
            return default()

    def save(self, key: str, schema: Any, value: Any) -> bool:
        """
        Save a state record.

        Encode or store failures skip the write; in-memory state stays
        authoritative.

        Args:
            key: State record key
            schema: Type the value is serialized as
            value: State to persist

        Returns:
            True if the write was handed to the store
        """
        try:
            data = self._adapter(schema).dump_python(value, mode="json")
            raw = json.dumps({"version": STATE_SCHEMA_VERSION, "data": data}).encode("utf-8")
        except (TypeError, ValueError, PydanticSerializationError) as e:
            logger.error(f"Encoding state '{key}' failed, write skipped: {e}")
            return False

        try:
            self.store.set(key, raw)
        except Exception as e:
            logger.error(f"Writing state '{key}' failed, write skipped: {e}")
            return False

        return True
