"""Pure constructors and updaters for the Library aggregate and its name tables."""

import time
from dataclasses import replace
from typing import Any

from .types import (
    CATEGORY_BY_FUNCTION,
    TAG,
    Configuration,
    ConnectionSettings,
    Library,
    NameBucketMap,
    NameTableCategory,
    NameTableSet,
    Parity,
    ReadQuery,
    SerialOptions,
    WriteQuery,
)

# Reserved tag for the unsaved working profile.
SCRATCH_ID: TAG = "__scratch__"


def now_ms() -> int:
    """Current time as integer milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def create_empty_name_table_set() -> NameTableSet:
    return NameTableSet(updated_at=now_ms(), names=NameBucketMap())


def create_empty_library() -> Library:
    return Library(name_tables={}, profiles={}, active_profile_tag=None)


def default_configuration() -> Configuration:
    """Device 1 at 9600 baud, 8N1, no name table, no shortcuts."""
    return Configuration(
        name_table_set_id=None,
        connection_settings=ConnectionSettings(
            device_id=1,
            options=SerialOptions(baud_rate=9600, data_bits=8, parity=Parity.NONE, stop_bits=1),
        ),
        write_shortcuts={},
        updated_at=now_ms(),
        layout=(),
    )


def library_template() -> dict[str, Any]:
    """Example serialized library, a starting point for hand-edited documents."""
    stamp = now_ms()
    return {
        "nameTables": {
            "EXAMPLE_NAME_TABLE": {
                "updatedAt": stamp,
                "names": {
                    "iregs": [[0, "First IReg"], [1, "Second IReg"]],
                    "hregs": [[0, "First HReg"], [1, "Second HReg"]],
                    "coils": [[0, "First Coil"], [1, "Second Coil"]],
                    "dinputs": [[0, "First DInput"], [1, "Second DInput"]],
                },
            }
        },
        "profiles": {
            "EXAMPLE_PROFILE": {
                "nameTableSetId": None,
                "layout": [],
                "connectionSettings": {
                    "deviceId": 1,
                    "options": {"baudRate": 9600, "dataBits": 8, "parity": "none", "stopBits": 1},
                },
                "writeShortcuts": {},
                "updatedAt": stamp,
            }
        },
        "activeProfileTag": "EXAMPLE_PROFILE",
    }


# ---------------------------------------------------------------------------
# Pure updaters
# ---------------------------------------------------------------------------


def upsert_name_table_set(lib: Library, tag: TAG, nts: NameTableSet) -> Library:
    """Install nts under tag (stamped now), replacing any previous entry as a whole."""
    stamped = replace(nts, updated_at=now_ms())
    return replace(lib, name_tables={**lib.name_tables, tag: stamped})


def delete_name_table_set(lib: Library, tag: TAG) -> Library:
    """Remove tag; returns lib itself when tag is absent. Profiles referencing it are untouched."""
    if tag not in lib.name_tables:
        return lib
    remaining = {k: v for k, v in lib.name_tables.items() if k != tag}
    return replace(lib, name_tables=remaining)


def upsert_profile(lib: Library, tag: TAG, cfg: Configuration) -> Library:
    stamped = replace(cfg, updated_at=now_ms())
    return replace(lib, profiles={**lib.profiles, tag: stamped})


def delete_profile(lib: Library, tag: TAG) -> Library:
    if tag not in lib.profiles:
        return lib
    remaining = {k: v for k, v in lib.profiles.items() if k != tag}
    return replace(lib, profiles=remaining)


def set_active_profile(lib: Library, tag: TAG | None) -> Library:
    """Set (or clear with None) the active profile tag. The tag is not checked against profiles."""
    return replace(lib, active_profile_tag=tag)


def set_name(nts: NameTableSet, category: NameTableCategory | str, address: int, label: str) -> NameTableSet:
    """Return a copy of nts with address labelled in one bucket."""
    cat = NameTableCategory(category)
    bucket = {**nts.names.bucket(cat), address: label}
    return replace(nts, names=replace(nts.names, **{cat.value: bucket}))


def remove_name(nts: NameTableSet, category: NameTableCategory | str, address: int) -> NameTableSet:
    """Return a copy of nts without the label for address; nts itself when there is none."""
    cat = NameTableCategory(category)
    current = nts.names.bucket(cat)
    if address not in current:
        return nts
    bucket = {k: v for k, v in current.items() if k != address}
    return replace(nts, names=replace(nts.names, **{cat.value: bucket}))


# ---------------------------------------------------------------------------
# Soft-reference resolution
# ---------------------------------------------------------------------------


def resolve_address_name(query: ReadQuery | WriteQuery, nts: NameTableSet) -> str | None:
    """Label for query.address in the bucket its function addresses, or None."""
    category = CATEGORY_BY_FUNCTION[query.type]
    return nts.names.bucket(category).get(query.address)


def resolve_profile_address_name(
    lib: Library, cfg: Configuration, query: ReadQuery | WriteQuery
) -> str | None:
    """Like resolve_address_name, following cfg's name table reference; dangling -> None."""
    if cfg.name_table_set_id is None:
        return None
    nts = lib.name_tables.get(cfg.name_table_set_id)
    if nts is None:
        return None
    return resolve_address_name(query, nts)


def active_profile(lib: Library) -> Configuration | None:
    if lib.active_profile_tag is None:
        return None
    return lib.profiles.get(lib.active_profile_tag)


def merge_library(base: Library, incoming: Library) -> Library:
    """
    Overlay incoming onto base: entries of incoming win tag collisions and keep
    their own updated_at. The active tag is taken from incoming when it has one.
    """
    return Library(
        name_tables={**base.name_tables, **incoming.name_tables},
        profiles={**base.profiles, **incoming.profiles},
        active_profile_tag=incoming.active_profile_tag if incoming.active_profile_tag is not None else base.active_profile_tag,
    )
