"""Declarative pydantic shapes for the persisted library document, and validate_library()."""

import logging
from typing import Annotated, Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from .errors import LibraryValidationError
from .types import LayoutItem, Parity, WriteFunction

logger = logging.getLogger(__name__)

Address = Annotated[StrictInt, Field(ge=0)]
Timestamp = Union[StrictInt, Annotated[StrictFloat, Field(allow_inf_nan=False)]]
NamePair = tuple[Address, StrictStr]

# Standalone bucket, as stored by the legacy per-bucket layout.
NameBucketAdapter: TypeAdapter[list[tuple[int, str]]] = TypeAdapter(list[NamePair])


class _WireModel(BaseModel):
    """Base for wire shapes: camelCase keys on the wire, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, frozen=True)


class SerializableNameBucketMapModel(_WireModel):
    iregs: list[NamePair]
    hregs: list[NamePair]
    coils: list[NamePair]
    dinputs: list[NamePair]


class SerializableNameTableSetModel(_WireModel):
    updated_at: Timestamp
    names: SerializableNameBucketMapModel


class SerialOptionsModel(_WireModel):
    baud_rate: StrictInt
    data_bits: StrictInt
    parity: Parity
    stop_bits: StrictInt


class ConnectionSettingsModel(_WireModel):
    device_id: StrictInt
    options: SerialOptionsModel


class WriteQueryModel(_WireModel):
    type: WriteFunction
    address: Address
    values: Union[list[StrictBool], list[StrictInt]]


class ConfigurationModel(_WireModel):
    name_table_set_id: StrictStr | None
    layout: list[LayoutItem] | None = None
    connection_settings: ConnectionSettingsModel
    write_shortcuts: dict[str, WriteQueryModel]
    updated_at: Timestamp


class SerializableLibraryModel(_WireModel):
    name_tables: dict[str, SerializableNameTableSetModel]
    profiles: dict[str, ConfigurationModel]
    active_profile_tag: StrictStr | None


def _format_loc(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc)


def validate_library(obj: Any) -> SerializableLibraryModel:
    """
    Validate a parsed (untrusted) library document.

    All-or-nothing: either the whole document is accepted or
    LibraryValidationError is raised naming the first violated field path.
    """
    try:
        return SerializableLibraryModel.model_validate(obj)
    except ValidationError as e:
        first = e.errors()[0]
        path = _format_loc(first["loc"])
        logger.debug("Library document rejected: %d error(s), first at %r", e.error_count(), path)
        raise LibraryValidationError(path, first["msg"]) from e
