"""Core data model: name-table buckets, connection settings, profiles, and the library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TAG = str

# Opaque panel layout entry; passed through unchanged.
LayoutItem = dict[str, Any]


class NameTableCategory(str, Enum):
    """The four addressable Modbus spaces, one name bucket each."""

    IREGS = "iregs"
    HREGS = "hregs"
    COILS = "coils"
    DINPUTS = "dinputs"


class ReadFunction(str, Enum):
    """Read functions, named like the Modbus client read methods."""

    READ_INPUT_REGISTERS = "read_input_registers"
    READ_HOLDING_REGISTERS = "read_holding_registers"
    READ_COILS = "read_coils"
    READ_DISCRETE_INPUTS = "read_discrete_inputs"


class WriteFunction(str, Enum):
    """Write function codes usable in write shortcuts."""

    WRITE_COILS = "write_coils"
    WRITE_REGISTERS = "write_registers"


class Parity(str, Enum):
    """Serial line parity."""

    NONE = "none"
    EVEN = "even"
    ODD = "odd"


CATEGORY_BY_FUNCTION: dict[ReadFunction | WriteFunction, NameTableCategory] = {
    ReadFunction.READ_INPUT_REGISTERS: NameTableCategory.IREGS,
    ReadFunction.READ_HOLDING_REGISTERS: NameTableCategory.HREGS,
    ReadFunction.READ_COILS: NameTableCategory.COILS,
    ReadFunction.READ_DISCRETE_INPUTS: NameTableCategory.DINPUTS,
    WriteFunction.WRITE_REGISTERS: NameTableCategory.HREGS,
    WriteFunction.WRITE_COILS: NameTableCategory.COILS,
}

REGISTER_PREFIXES: dict[ReadFunction | WriteFunction, str] = {
    ReadFunction.READ_HOLDING_REGISTERS: "HR",
    ReadFunction.READ_INPUT_REGISTERS: "IR",
    ReadFunction.READ_COILS: "CR",
    ReadFunction.READ_DISCRETE_INPUTS: "DI",
    WriteFunction.WRITE_COILS: "C",
    WriteFunction.WRITE_REGISTERS: "HR",
}


@dataclass(frozen=True)
class NameBucketMap:
    """Address -> label maps for all four categories. Every bucket is always present."""

    iregs: dict[int, str] = field(default_factory=dict)
    hregs: dict[int, str] = field(default_factory=dict)
    coils: dict[int, str] = field(default_factory=dict)
    dinputs: dict[int, str] = field(default_factory=dict)

    def bucket(self, category: NameTableCategory | str) -> dict[int, str]:
        return getattr(self, NameTableCategory(category).value)


@dataclass(frozen=True)
class NameTableSet:
    updated_at: int | float
    names: NameBucketMap


@dataclass(frozen=True)
class SerialOptions:
    """Serial line parameters; ranges are the transport's concern."""

    baud_rate: int
    data_bits: int
    parity: Parity
    stop_bits: int


@dataclass(frozen=True)
class ConnectionSettings:
    device_id: int
    options: SerialOptions


@dataclass(frozen=True)
class ReadQuery:
    type: ReadFunction
    address: int
    quantity: int


@dataclass(frozen=True)
class WriteQuery:
    type: WriteFunction
    address: int
    values: tuple[int, ...] | tuple[bool, ...]


@dataclass(frozen=True)
class Configuration:
    """A profile: connection parameters, write shortcuts, and a soft reference to a name table."""

    name_table_set_id: TAG | None
    connection_settings: ConnectionSettings
    write_shortcuts: dict[str, WriteQuery]
    updated_at: int | float
    layout: tuple[LayoutItem, ...] | None = None


@dataclass(frozen=True)
class Library:
    """
    Root aggregate. Treat instances as immutable snapshots: every update
    function returns a new Library and leaves its input untouched.
    """

    name_tables: dict[TAG, NameTableSet] = field(default_factory=dict)
    profiles: dict[TAG, Configuration] = field(default_factory=dict)
    active_profile_tag: TAG | None = None
