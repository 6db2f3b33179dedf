"""Tests for the pure Library constructors, updaters, and soft-reference resolution."""

from dataclasses import replace

import pytest

from modbus_profiles import library as library_mod
from modbus_profiles.library import (
    SCRATCH_ID,
    active_profile,
    create_empty_library,
    create_empty_name_table_set,
    default_configuration,
    delete_name_table_set,
    delete_profile,
    merge_library,
    remove_name,
    resolve_address_name,
    resolve_profile_address_name,
    set_active_profile,
    set_name,
    upsert_name_table_set,
    upsert_profile,
)
from modbus_profiles.types import (
    Library,
    NameBucketMap,
    NameTableCategory,
    NameTableSet,
    Parity,
    ReadFunction,
    ReadQuery,
    WriteFunction,
    WriteQuery,
)


@pytest.fixture
def frozen_clock(monkeypatch: pytest.MonkeyPatch) -> int:
    stamp = 1_700_000_000_000
    monkeypatch.setattr(library_mod, "now_ms", lambda: stamp)
    return stamp


@pytest.fixture
def nts() -> NameTableSet:
    return NameTableSet(
        updated_at=1,
        names=NameBucketMap(iregs={0: "Temp", 1: "Pressure"}, coils={5: "Pump"}),
    )


def test_create_empty_name_table_set_has_four_empty_buckets(frozen_clock: int) -> None:
    empty = create_empty_name_table_set()
    assert empty.updated_at == frozen_clock
    for cat in NameTableCategory:
        assert empty.names.bucket(cat) == {}


def test_create_empty_library() -> None:
    lib = create_empty_library()
    assert lib.name_tables == {}
    assert lib.profiles == {}
    assert lib.active_profile_tag is None


def test_default_configuration_is_8n1() -> None:
    cfg = default_configuration()
    opts = cfg.connection_settings.options
    assert cfg.connection_settings.device_id == 1
    assert (opts.baud_rate, opts.data_bits, opts.parity, opts.stop_bits) == (9600, 8, Parity.NONE, 1)
    assert cfg.name_table_set_id is None
    assert cfg.write_shortcuts == {}
    assert cfg.layout == ()


def test_upsert_name_table_set_stamps_updated_at(frozen_clock: int, nts: NameTableSet) -> None:
    lib = upsert_name_table_set(create_empty_library(), "A", nts)
    assert lib.name_tables["A"].updated_at == frozen_clock
    assert lib.name_tables["A"].names == nts.names
    # caller's value is untouched
    assert nts.updated_at == 1


def test_upsert_overwrites_whole_table(nts: NameTableSet) -> None:
    lib = upsert_name_table_set(create_empty_library(), "A", nts)
    other = NameTableSet(updated_at=0, names=NameBucketMap(hregs={3: "Setpoint"}))
    lib = upsert_name_table_set(lib, "A", other)
    stored = lib.name_tables["A"]
    assert stored.names == other.names
    assert stored.names.iregs == {}


def test_upsert_does_not_mutate_input(nts: NameTableSet) -> None:
    original = create_empty_library()
    updated = upsert_name_table_set(original, "A", nts)
    assert original.name_tables == {}
    assert updated is not original


def test_upsert_shares_untouched_entries(nts: NameTableSet) -> None:
    lib = upsert_name_table_set(create_empty_library(), "A", nts)
    lib2 = upsert_name_table_set(lib, "B", nts)
    assert lib2.name_tables["A"] is lib.name_tables["A"]


def test_delete_name_table_set_removes_entry(nts: NameTableSet) -> None:
    lib = upsert_name_table_set(create_empty_library(), "A", nts)
    lib = upsert_name_table_set(lib, "B", nts)
    after = delete_name_table_set(lib, "A")
    assert list(after.name_tables) == ["B"]
    assert "A" in lib.name_tables


def test_delete_missing_name_table_returns_same_value() -> None:
    lib = create_empty_library()
    assert delete_name_table_set(lib, "missing") is lib


def test_delete_name_table_keeps_dangling_profile_reference(nts: NameTableSet) -> None:
    lib = upsert_name_table_set(create_empty_library(), "A", nts)
    lib = upsert_profile(lib, "p", replace(default_configuration(), name_table_set_id="A"))
    lib = delete_name_table_set(lib, "A")
    assert lib.profiles["p"].name_table_set_id == "A"


def test_upsert_and_delete_profile(frozen_clock: int) -> None:
    cfg = replace(default_configuration(), updated_at=5)
    lib = upsert_profile(create_empty_library(), "p", cfg)
    assert lib.profiles["p"].updated_at == frozen_clock
    assert lib.profiles["p"].connection_settings == cfg.connection_settings
    lib = delete_profile(lib, "p")
    assert lib.profiles == {}


def test_delete_profile_is_idempotent() -> None:
    lib = upsert_profile(create_empty_library(), "p", default_configuration())
    once = delete_profile(lib, "p")
    assert delete_profile(once, "p") == once
    assert delete_profile(once, "p") is once


@pytest.mark.parametrize("tag", ["p", "missing", None])
def test_set_active_profile_is_unchecked(tag: str | None) -> None:
    lib = upsert_profile(create_empty_library(), "p", default_configuration())
    assert set_active_profile(lib, tag).active_profile_tag == tag


def test_active_profile_follows_soft_reference() -> None:
    lib = upsert_profile(create_empty_library(), "p", default_configuration())
    assert active_profile(lib) is None
    assert active_profile(set_active_profile(lib, "p")) is lib.profiles["p"]
    assert active_profile(set_active_profile(lib, "gone")) is None


def test_set_name_and_remove_name(nts: NameTableSet) -> None:
    labelled = set_name(nts, "hregs", 10, "Speed")
    assert labelled.names.hregs == {10: "Speed"}
    assert nts.names.hregs == {}
    assert labelled.names.iregs is nts.names.iregs

    removed = remove_name(labelled, NameTableCategory.IREGS, 0)
    assert removed.names.iregs == {1: "Pressure"}
    assert remove_name(removed, NameTableCategory.IREGS, 99) is removed


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        (ReadQuery(ReadFunction.READ_INPUT_REGISTERS, 0, 1), "Temp"),
        (ReadQuery(ReadFunction.READ_HOLDING_REGISTERS, 0, 1), None),
        (ReadQuery(ReadFunction.READ_COILS, 5, 1), "Pump"),
        (WriteQuery(WriteFunction.WRITE_COILS, 5, (True,)), "Pump"),
        (WriteQuery(WriteFunction.WRITE_REGISTERS, 0, (1,)), None),
        (ReadQuery(ReadFunction.READ_DISCRETE_INPUTS, 5, 1), None),
    ],
)
def test_resolve_address_name(nts: NameTableSet, query: ReadQuery | WriteQuery, expected: str | None) -> None:
    assert resolve_address_name(query, nts) == expected


def test_resolve_profile_address_name_tolerates_dangling_reference(nts: NameTableSet) -> None:
    lib = upsert_name_table_set(create_empty_library(), "T1", nts)
    query = ReadQuery(ReadFunction.READ_INPUT_REGISTERS, 0, 1)

    linked = replace(default_configuration(), name_table_set_id="T1")
    dangling = replace(default_configuration(), name_table_set_id="nope")
    unlinked = default_configuration()

    assert resolve_profile_address_name(lib, linked, query) == "Temp"
    assert resolve_profile_address_name(lib, dangling, query) is None
    assert resolve_profile_address_name(lib, unlinked, query) is None


def test_merge_library_prefers_incoming(nts: NameTableSet) -> None:
    base = upsert_name_table_set(create_empty_library(), "A", nts)
    base = set_active_profile(upsert_profile(base, "p", default_configuration()), "p")
    incoming = Library(
        name_tables={"A": create_empty_name_table_set(), "B": nts},
        profiles={},
        active_profile_tag=None,
    )
    merged = merge_library(base, incoming)
    assert merged.name_tables["A"] is incoming.name_tables["A"]
    assert set(merged.name_tables) == {"A", "B"}
    assert "p" in merged.profiles
    assert merged.active_profile_tag == "p"


def test_scratch_id_constant() -> None:
    assert SCRATCH_ID == "__scratch__"
