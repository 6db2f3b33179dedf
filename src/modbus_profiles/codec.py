"""
Library <-> JSON-safe document.

Name buckets are dicts keyed by int in memory and lists of [address, label]
pairs on the wire, in the dict's iteration order. No canonical sort is
applied, so equal buckets built in different orders may encode differently.
"""

import copy
import json
import logging
from typing import Any

from .errors import LibraryParseError, LibraryValidationError
from .schema import (
    ConfigurationModel,
    SerializableLibraryModel,
    SerializableNameBucketMapModel,
    WriteQueryModel,
    validate_library,
)
from .types import (
    Configuration,
    ConnectionSettings,
    Library,
    NameBucketMap,
    NameTableCategory,
    NameTableSet,
    Parity,
    SerialOptions,
    WriteFunction,
    WriteQuery,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def encode_name_bucket_map(names: NameBucketMap) -> dict[str, list[list[Any]]]:
    return {
        cat.value: [[address, label] for address, label in names.bucket(cat).items()]
        for cat in NameTableCategory
    }


def encode_write_query(query: WriteQuery) -> dict[str, Any]:
    return {
        "type": WriteFunction(query.type).value,
        "address": query.address,
        "values": list(query.values),
    }


def encode_configuration(cfg: Configuration) -> dict[str, Any]:
    conn = cfg.connection_settings
    out: dict[str, Any] = {
        "nameTableSetId": cfg.name_table_set_id,
        "connectionSettings": {
            "deviceId": conn.device_id,
            "options": {
                "baudRate": conn.options.baud_rate,
                "dataBits": conn.options.data_bits,
                "parity": Parity(conn.options.parity).value,
                "stopBits": conn.options.stop_bits,
            },
        },
        "writeShortcuts": {name: encode_write_query(q) for name, q in cfg.write_shortcuts.items()},
        "updatedAt": cfg.updated_at,
    }
    if cfg.layout is not None:
        out["layout"] = [copy.deepcopy(item) for item in cfg.layout]
    return out


def encode(lib: Library) -> dict[str, Any]:
    """Return the JSON-safe SerializableLibrary document for lib."""
    return {
        "nameTables": {
            tag: {"updatedAt": nts.updated_at, "names": encode_name_bucket_map(nts.names)}
            for tag, nts in lib.name_tables.items()
        },
        "profiles": {tag: encode_configuration(cfg) for tag, cfg in lib.profiles.items()},
        "activeProfileTag": lib.active_profile_tag,
    }


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _decode_name_bucket_map(model: SerializableNameBucketMapModel) -> NameBucketMap:
    # dict() over pairs: a repeated address keeps the later label
    return NameBucketMap(
        iregs=dict(model.iregs),
        hregs=dict(model.hregs),
        coils=dict(model.coils),
        dinputs=dict(model.dinputs),
    )


def _decode_write_query(model: WriteQueryModel) -> WriteQuery:
    return WriteQuery(type=model.type, address=model.address, values=tuple(model.values))


def _decode_configuration(model: ConfigurationModel) -> Configuration:
    opts = model.connection_settings.options
    return Configuration(
        name_table_set_id=model.name_table_set_id,
        connection_settings=ConnectionSettings(
            device_id=model.connection_settings.device_id,
            options=SerialOptions(
                baud_rate=opts.baud_rate,
                data_bits=opts.data_bits,
                parity=opts.parity,
                stop_bits=opts.stop_bits,
            ),
        ),
        write_shortcuts={name: _decode_write_query(q) for name, q in model.write_shortcuts.items()},
        updated_at=model.updated_at,
        layout=tuple(model.layout) if model.layout is not None else None,
    )


def decode_model(model: SerializableLibraryModel) -> Library:
    """Build a Library from an already-validated document model."""
    return Library(
        name_tables={
            tag: NameTableSet(updated_at=nts.updated_at, names=_decode_name_bucket_map(nts.names))
            for tag, nts in model.name_tables.items()
        },
        profiles={tag: _decode_configuration(cfg) for tag, cfg in model.profiles.items()},
        active_profile_tag=model.active_profile_tag,
    )


def decode(payload: Any) -> Library:
    """
    Validate and decode a parsed SerializableLibrary document.

    The payload is copied before anything else so the caller's object is never
    mutated or aliased by the returned Library. Raises LibraryValidationError.
    """
    try:
        payload = copy.deepcopy(payload)
    except RecursionError:
        raise LibraryValidationError("", "document is nested too deeply") from None
    return decode_model(validate_library(payload))


# ---------------------------------------------------------------------------
# Text helpers (import/export)
# ---------------------------------------------------------------------------


def dumps(lib: Library, indent: int | None = None) -> str:
    return json.dumps(encode(lib), indent=indent, ensure_ascii=False)


def loads(text: str) -> Library:
    """Parse and decode a library document. Raises LibraryParseError or LibraryValidationError."""
    try:
        payload = json.loads(text)
    except (ValueError, TypeError, RecursionError) as e:
        raise LibraryParseError(f"Library document is not valid JSON: {e}", cause=e) from e
    return decode(payload)
