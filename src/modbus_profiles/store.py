"""LibraryStore: versioned save/load of the Library document with corruption containment."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from .codec import decode, dumps, loads
from .errors import LibraryValidationError, StorageUnavailableError
from .library import create_empty_library, now_ms, upsert_name_table_set
from .schema import NameBucketAdapter
from .storage import KeyValueStorage
from .types import TAG, Library, NameBucketMap, NameTableCategory, NameTableSet

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "modbus"
STORAGE_VERSION = "v1"


class LibraryStore:
    """
    Persists exactly one serialized Library under "<namespace>:library:<version>".

    The in-memory Library stays authoritative: save() never raises, and load()
    falls back to an empty Library on any read, parse, or validation failure.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        namespace: str = DEFAULT_NAMESPACE,
        version: str = STORAGE_VERSION,
    ) -> None:
        self._storage = storage
        self._namespace = namespace
        self._version = version

    @property
    def key(self) -> str:
        return f"{self._namespace}:library:{self._version}"

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    def legacy_key(self, category: NameTableCategory | str) -> str:
        return f"{self._namespace}:names:{NameTableCategory(category).value}"

    def save(self, lib: Library) -> bool:
        """Encode and write lib. Returns False (and logs a warning) if the backend refused the write."""
        try:
            text = dumps(lib)
            self._storage.set_item(self.key, text)
        except Exception as e:
            logger.warning("Failed to save library to %s; storage may be full or unavailable: %s", self.key, e)
            return False
        logger.debug("Saved library to %s (%d chars)", self.key, len(text))
        return True

    def load_raw(self) -> str | None:
        """Raw stored text, or None if never written or unreadable."""
        try:
            raw = self._storage.get_item(self.key)
        except Exception as e:
            logger.warning("Failed to read library from %s: %s", self.key, e)
            return None
        if not raw:
            return None
        return raw

    def load(self) -> Library:
        """Stored Library, or an empty one when absent, corrupt, or of a foreign shape."""
        raw = self.load_raw()
        if raw is None:
            return create_empty_library()
        try:
            payload: Any = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logger.warning("Stored library at %s is not valid JSON, using empty library: %s", self.key, e)
            return create_empty_library()
        try:
            lib = decode(payload)
        except LibraryValidationError as e:
            logger.warning("Stored library at %s failed validation, using empty library: %s", self.key, e)
            return create_empty_library()
        logger.debug(
            "Loaded library from %s: %d name table(s), %d profile(s)",
            self.key,
            len(lib.name_tables),
            len(lib.profiles),
        )
        return lib

    def clear(self) -> bool:
        """Remove the stored document. Returns False if the backend refused."""
        try:
            self._storage.remove_item(self.key)
        except Exception as e:
            logger.warning("Failed to remove %s: %s", self.key, e)
            return False
        return True

    def request_persistence(self) -> None:
        """Best-effort request for durable storage; backends without persist() are left alone."""
        persist = getattr(self._storage, "persist", None)
        if persist is None:
            return
        try:
            persist()
        except Exception as e:
            logger.debug("Persistence request failed: %s", e)

    # -----------------------------------------------------------------------
    # Legacy per-bucket names
    # -----------------------------------------------------------------------

    def _load_legacy_bucket(self, category: NameTableCategory) -> dict[int, str] | None:
        key = self.legacy_key(category)
        try:
            raw = self._storage.get_item(key)
        except StorageUnavailableError as e:
            logger.warning("Failed to read legacy bucket %s: %s", key, e)
            return None
        if not raw:
            return None
        try:
            pairs = NameBucketAdapter.validate_python(json.loads(raw))
        except (ValueError, RecursionError, ValidationError) as e:
            logger.warning("Legacy bucket %s is corrupt, treating as empty: %s", key, e)
            return {}
        return dict(pairs)

    def load_legacy_names(self) -> NameTableSet | None:
        """Names stored by the per-bucket layout, or None if no legacy bucket exists."""
        buckets = {cat: self._load_legacy_bucket(cat) for cat in NameTableCategory}
        if all(b is None for b in buckets.values()):
            return None
        names = NameBucketMap(**{cat.value: (b or {}) for cat, b in buckets.items()})
        return NameTableSet(updated_at=now_ms(), names=names)

    def migrate_legacy_names(self, lib: Library, tag: TAG) -> Library:
        """Install legacy names under tag; lib unchanged when there are none. Does not save."""
        nts = self.load_legacy_names()
        if nts is None:
            return lib
        logger.info("Migrating legacy names into name table %r", tag)
        return upsert_name_table_set(lib, tag, nts)


def import_library(text: str) -> Library:
    """
    Import path: unlike LibraryStore.load(), failures are raised to the caller
    as LibraryParseError or LibraryValidationError.
    """
    return loads(text)
