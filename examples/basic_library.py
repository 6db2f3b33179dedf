#!/usr/bin/env python3
"""Example: label a few addresses, build a profile, save it, and read it back."""

import sys
from dataclasses import replace

from modbus_profiles import (
    FileStorage,
    LibraryStore,
    NameTableCategory,
    ReadFunction,
    ReadQuery,
    create_empty_name_table_set,
    default_configuration,
    resolve_profile_address_name,
    set_active_profile,
    set_name,
    upsert_name_table_set,
    upsert_profile,
)
from modbus_profiles.errors import LibraryParseError, LibraryValidationError
from modbus_profiles.store import import_library


def main() -> None:
    store = LibraryStore(FileStorage("example-library"))  # change to your data directory
    store.request_persistence()
    lib = store.load()

    # Label registers of the device
    nts = create_empty_name_table_set()
    nts = set_name(nts, NameTableCategory.IREGS, 0, "Temperature")
    nts = set_name(nts, NameTableCategory.HREGS, 100, "Setpoint")
    lib = upsert_name_table_set(lib, "boiler", nts)

    # Profile pointing at the name table
    cfg = replace(default_configuration(), name_table_set_id="boiler")
    lib = set_active_profile(upsert_profile(lib, "boiler-bench", cfg), "boiler-bench")

    if not store.save(lib):
        print("Warning: library was not saved", file=sys.stderr)

    restored = store.load()
    query = ReadQuery(ReadFunction.READ_INPUT_REGISTERS, address=0, quantity=1)
    label = resolve_profile_address_name(restored, restored.profiles["boiler-bench"], query)
    print(f"IR0 = {label}")

    # Import path: errors are reported instead of falling back to empty
    try:
        import_library('{"nameTables": {}, "profiles": {}}')
    except LibraryParseError as e:
        print(f"Not JSON: {e}", file=sys.stderr)
    except LibraryValidationError as e:
        print(f"Rejected at {e.path}: {e.reason}", file=sys.stderr)


if __name__ == "__main__":
    main()
