"""Tests for library document validation."""

import copy
from typing import Any

import pytest

from modbus_profiles.errors import LibraryValidationError
from modbus_profiles.library import library_template
from modbus_profiles.schema import SerializableLibraryModel, validate_library
from modbus_profiles.types import Parity, WriteFunction


def _profile(**overrides: Any) -> dict[str, Any]:
    cfg: dict[str, Any] = {
        "nameTableSetId": "T1",
        "connectionSettings": {
            "deviceId": 3,
            "options": {"baudRate": 19200, "dataBits": 8, "parity": "even", "stopBits": 1},
        },
        "writeShortcuts": {
            "start": {"type": "write_coils", "address": 4, "values": [True]},
            "speed": {"type": "write_registers", "address": 10, "values": [1500, 0]},
        },
        "updatedAt": 1700000000000,
    }
    cfg.update(overrides)
    return cfg


@pytest.fixture
def document() -> dict[str, Any]:
    return {
        "nameTables": {
            "T1": {
                "updatedAt": 1700000000000,
                "names": {"iregs": [[0, "Temp"]], "hregs": [], "coils": [[4, "Start"]], "dinputs": []},
            }
        },
        "profiles": {"bench": _profile()},
        "activeProfileTag": "bench",
    }


def test_valid_document_is_accepted(document: dict[str, Any]) -> None:
    model = validate_library(document)
    assert isinstance(model, SerializableLibraryModel)
    assert model.name_tables["T1"].names.iregs == [(0, "Temp")]
    cfg = model.profiles["bench"]
    assert cfg.connection_settings.options.parity is Parity.EVEN
    assert cfg.write_shortcuts["start"].type is WriteFunction.WRITE_COILS
    assert cfg.write_shortcuts["start"].values == [True]
    assert cfg.write_shortcuts["speed"].values == [1500, 0]
    assert model.active_profile_tag == "bench"


def test_template_is_valid() -> None:
    model = validate_library(library_template())
    assert model.active_profile_tag == "EXAMPLE_PROFILE"
    assert len(model.name_tables["EXAMPLE_NAME_TABLE"].names.dinputs) == 2


def test_missing_bucket_names_path(document: dict[str, Any]) -> None:
    del document["nameTables"]["T1"]["names"]["dinputs"]
    with pytest.raises(LibraryValidationError) as exc_info:
        validate_library(document)
    assert exc_info.value.path == "nameTables.T1.names.dinputs"


def test_missing_top_level_field(document: dict[str, Any]) -> None:
    del document["activeProfileTag"]
    with pytest.raises(LibraryValidationError) as exc_info:
        validate_library(document)
    assert exc_info.value.path == "activeProfileTag"


def test_null_active_tag_and_name_table_reference_allowed(document: dict[str, Any]) -> None:
    document["activeProfileTag"] = None
    document["profiles"]["bench"]["nameTableSetId"] = None
    model = validate_library(document)
    assert model.active_profile_tag is None
    assert model.profiles["bench"].name_table_set_id is None


@pytest.mark.parametrize(
    ("mutate", "path_prefix"),
    [
        (lambda d: d["nameTables"]["T1"]["names"].__setitem__("iregs", [["0", "Temp"]]), "nameTables.T1.names.iregs"),
        (lambda d: d["nameTables"]["T1"]["names"].__setitem__("iregs", [[0, 7]]), "nameTables.T1.names.iregs"),
        (lambda d: d["nameTables"]["T1"]["names"].__setitem__("iregs", [[-1, "x"]]), "nameTables.T1.names.iregs"),
        (lambda d: d["nameTables"]["T1"]["names"].__setitem__("iregs", [[0, "a", "b"]]), "nameTables.T1.names.iregs"),
        (lambda d: d["nameTables"]["T1"]["names"].__setitem__("coils", {"4": "Start"}), "nameTables.T1.names.coils"),
        (lambda d: d["nameTables"]["T1"].__setitem__("updatedAt", "yesterday"), "nameTables.T1.updatedAt"),
        (
            lambda d: d["profiles"]["bench"]["connectionSettings"]["options"].__setitem__("parity", "mark"),
            "profiles.bench.connectionSettings.options.parity",
        ),
        (
            lambda d: d["profiles"]["bench"]["connectionSettings"]["options"].__setitem__("dataBits", 7.5),
            "profiles.bench.connectionSettings.options.dataBits",
        ),
        (
            lambda d: d["profiles"]["bench"]["connectionSettings"]["options"].__setitem__("stopBits", "1"),
            "profiles.bench.connectionSettings.options.stopBits",
        ),
        (
            lambda d: d["profiles"]["bench"]["writeShortcuts"]["start"].__setitem__("type", "write_magic"),
            "profiles.bench.writeShortcuts.start.type",
        ),
        (
            lambda d: d["profiles"]["bench"]["writeShortcuts"]["start"].__setitem__("values", [True, 1, "x"]),
            "profiles.bench.writeShortcuts.start.values",
        ),
        (lambda d: d["profiles"]["bench"].__setitem__("layout", [1, 2]), "profiles.bench.layout"),
        (lambda d: d.__setitem__("activeProfileTag", 5), "activeProfileTag"),
    ],
)
def test_invalid_fields_are_rejected(document: dict[str, Any], mutate: Any, path_prefix: str) -> None:
    mutate(document)
    with pytest.raises(LibraryValidationError) as exc_info:
        validate_library(document)
    assert exc_info.value.path.startswith(path_prefix)


def test_bool_is_not_an_integer(document: dict[str, Any]) -> None:
    document["profiles"]["bench"]["connectionSettings"]["deviceId"] = True
    with pytest.raises(LibraryValidationError):
        validate_library(document)


def test_layout_items_pass_through(document: dict[str, Any]) -> None:
    document["profiles"]["bench"]["layout"] = [{"unknown": {"panel": "read_coils", "x": 1}}, {}]
    model = validate_library(document)
    assert model.profiles["bench"].layout == [{"unknown": {"panel": "read_coils", "x": 1}}, {}]


@pytest.mark.parametrize("payload", [None, [], "library", 42])
def test_non_object_document_is_rejected(payload: Any) -> None:
    with pytest.raises(LibraryValidationError):
        validate_library(payload)


def test_validation_does_not_mutate_input(document: dict[str, Any]) -> None:
    before = copy.deepcopy(document)
    validate_library(document)
    assert document == before


@pytest.mark.parametrize("stamp", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_timestamps_are_rejected(document: dict[str, Any], stamp: float) -> None:
    document["nameTables"]["T1"]["updatedAt"] = stamp
    with pytest.raises(LibraryValidationError) as exc_info:
        validate_library(document)
    assert exc_info.value.path.startswith("nameTables.T1.updatedAt")

    document["nameTables"]["T1"]["updatedAt"] = 1700000000000.5
    document["profiles"]["bench"]["updatedAt"] = stamp
    with pytest.raises(LibraryValidationError) as exc_info:
        validate_library(document)
    assert exc_info.value.path.startswith("profiles.bench.updatedAt")
