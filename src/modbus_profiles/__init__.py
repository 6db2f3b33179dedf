"""modbus-profiles: named Modbus address tables and connection profiles, persisted as a versioned JSON library."""

__version__ = "0.1.0"

from .codec import decode, dumps, encode, loads
from .errors import LibraryParseError, LibraryValidationError, ModbusProfilesError, StorageUnavailableError
from .library import (
    SCRATCH_ID,
    active_profile,
    create_empty_library,
    create_empty_name_table_set,
    default_configuration,
    delete_name_table_set,
    delete_profile,
    library_template,
    merge_library,
    remove_name,
    resolve_address_name,
    resolve_profile_address_name,
    set_active_profile,
    set_name,
    upsert_name_table_set,
    upsert_profile,
)
from .schema import validate_library
from .storage import FileStorage, KeyValueStorage, MemoryStorage
from .store import LibraryStore, import_library
from .types import (
    CATEGORY_BY_FUNCTION,
    Configuration,
    ConnectionSettings,
    Library,
    NameBucketMap,
    NameTableCategory,
    NameTableSet,
    Parity,
    ReadFunction,
    ReadQuery,
    SerialOptions,
    WriteFunction,
    WriteQuery,
)

__all__ = [
    "__version__",
    "decode",
    "dumps",
    "encode",
    "loads",
    "LibraryParseError",
    "LibraryValidationError",
    "ModbusProfilesError",
    "StorageUnavailableError",
    "SCRATCH_ID",
    "active_profile",
    "create_empty_library",
    "create_empty_name_table_set",
    "default_configuration",
    "delete_name_table_set",
    "delete_profile",
    "library_template",
    "merge_library",
    "remove_name",
    "resolve_address_name",
    "resolve_profile_address_name",
    "set_active_profile",
    "set_name",
    "upsert_name_table_set",
    "upsert_profile",
    "validate_library",
    "FileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "LibraryStore",
    "import_library",
    "CATEGORY_BY_FUNCTION",
    "Configuration",
    "ConnectionSettings",
    "Library",
    "NameBucketMap",
    "NameTableCategory",
    "NameTableSet",
    "Parity",
    "ReadFunction",
    "ReadQuery",
    "SerialOptions",
    "WriteFunction",
    "WriteQuery",
]
