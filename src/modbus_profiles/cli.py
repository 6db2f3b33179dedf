#!/usr/bin/env python3
"""CLI for managing the modbus-profiles library (name tables, profiles, import/export) using Typer."""

import csv
import json
import logging
import traceback
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .codec import dumps, encode_configuration
from .errors import LibraryParseError, LibraryValidationError
from .library import (
    active_profile,
    create_empty_name_table_set,
    default_configuration,
    delete_name_table_set,
    delete_profile,
    library_template,
    merge_library,
    remove_name,
    resolve_profile_address_name,
    set_active_profile,
    set_name,
    upsert_name_table_set,
    upsert_profile,
)
from .storage import FileStorage
from .store import DEFAULT_NAMESPACE, LibraryStore, import_library
from .types import (
    CATEGORY_BY_FUNCTION,
    REGISTER_PREFIXES,
    ConnectionSettings,
    Library,
    NameTableCategory,
    Parity,
    ReadFunction,
    ReadQuery,
    SerialOptions,
    WriteFunction,
    WriteQuery,
)

app = typer.Typer(
    name="mbprofiles",
    help="Manage Modbus name tables and connection profiles.",
    no_args_is_help=True,
)
names_app = typer.Typer(help="Edit address name tables.", no_args_is_help=True)
profile_app = typer.Typer(help="Edit connection profiles.", no_args_is_help=True)
app.add_typer(names_app, name="names")
app.add_typer(profile_app, name="profile")

logger = logging.getLogger(__name__)

APP_NAME = "modbus-profiles"

READ_FUNCTION_BY_CATEGORY: dict[NameTableCategory, ReadFunction] = {
    cat: fn for fn, cat in CATEGORY_BY_FUNCTION.items() if isinstance(fn, ReadFunction)
}

# ============================================================================
# Shared options and helpers
# ============================================================================

StorageDirOption = Annotated[
    Optional[Path],
    typer.Option("--storage-dir", "-d", help="Directory holding the library", envvar="MODBUS_PROFILES_DIR"),
]
NamespaceOption = Annotated[
    str,
    typer.Option("--namespace", help="Storage key namespace", envvar="MODBUS_PROFILES_NAMESPACE"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
CategoryArgument = Annotated[
    NameTableCategory,
    typer.Argument(help="Address space: iregs, hregs, coils or dinputs"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@contextmanager
def exit_on_unexpected(verbose: bool) -> Iterator[None]:
    """Turn any error not handled by the command into exit code 4."""
    try:
        yield
    except (typer.Exit, typer.Abort):
        raise
    except Exception as e:
        typer.echo(f"Error: Unexpected error: {e}", err=True)
        if verbose:
            traceback.print_exc()
        raise typer.Exit(4)


def open_store(storage_dir: Optional[Path], namespace: str) -> LibraryStore:
    """Create a file-backed LibraryStore, defaulting to the per-user app directory."""
    directory = storage_dir if storage_dir is not None else Path(typer.get_app_dir(APP_NAME))
    store = LibraryStore(FileStorage(directory), namespace=namespace)
    store.request_persistence()
    return store


def save_or_exit(store: LibraryStore, lib: Library) -> None:
    if not store.save(lib):
        typer.echo(f"Error: Could not save library to {store.key}", err=True)
        raise typer.Exit(3)


def update_library(store: LibraryStore, update: Callable[[Library], Library]) -> Library:
    """Load, apply a pure update, and save."""
    lib = update(store.load())
    save_or_exit(store, lib)
    return lib


def parse_address(value: str) -> int:
    """Parse a non-negative address, decimal or 0x hex."""
    v = value.strip()
    if v.lower().startswith("0x"):
        num = int(v, 16)
    else:
        num = int(v)
    if num < 0:
        raise ValueError(f"Address must be >= 0, got {num}")
    return num


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_register(value: str) -> int:
    """Parse an unsigned 16-bit register value, decimal or 0x hex."""
    v = value.strip()
    num = int(v, 16) if v.lower().startswith("0x") else int(v)
    if not (0 <= num <= 65535):
        raise ValueError(f"Unsigned 16-bit integer out of range: {num}")
    return num


def format_address(address: int, width: int = 4) -> str:
    """Hex rendering of an address for listings, e.g. 0x000A."""
    return f"0x{address:0{width}X}"


def load_name_csv(csv_path: Path) -> dict[int, str]:
    """
    Read address -> label from a CSV with columns (address, label, ...).
    Rows with an empty label or a non-numeric address (headers) are skipped.
    """
    names: dict[int, str] = {}
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        for row in reader:
            if len(row) < 2:
                continue
            raw_addr = (row[0] or "").strip()
            label = (row[1] or "").strip()
            if not raw_addr or not label:
                continue
            try:
                address = parse_address(raw_addr)
            except ValueError:
                logger.debug("Skipping CSV row with address %r", raw_addr)
                continue
            names[address] = label
    return names


def library_summary(store: LibraryStore, lib: Library) -> dict[str, Any]:
    return {
        "key": store.key,
        "activeProfileTag": lib.active_profile_tag,
        "nameTables": {
            tag: {cat.value: len(nts.names.bucket(cat)) for cat in NameTableCategory}
            for tag, nts in lib.name_tables.items()
        },
        "profiles": {
            tag: {
                "nameTableSetId": cfg.name_table_set_id,
                "deviceId": cfg.connection_settings.device_id,
                "writeShortcuts": len(cfg.write_shortcuts),
            }
            for tag, cfg in lib.profiles.items()
        },
    }


# ============================================================================
# Library commands
# ============================================================================


@app.command()
def show(
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Summarize stored name tables, profiles, and the active profile."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        store = open_store(storage_dir, namespace)
        summary = library_summary(store, store.load())

        if json_output:
            typer.echo(json.dumps(summary, indent=2))
            return

        typer.echo(f"Library:        {summary['key']}")
        typer.echo(f"Active profile: {summary['activeProfileTag'] or '-'}")
        typer.echo(f"Name tables:    {len(summary['nameTables'])}")
        for tag, counts in summary["nameTables"].items():
            detail = ", ".join(f"{cat}={n}" for cat, n in counts.items())
            typer.echo(f"  {tag}: {detail}")
        typer.echo(f"Profiles:       {len(summary['profiles'])}")
        for tag, info in summary["profiles"].items():
            marker = "*" if tag == summary["activeProfileTag"] else " "
            typer.echo(f" {marker}{tag}: device {info['deviceId']}, names {info['nameTableSetId'] or '-'}")


@app.command("export")
def export_cmd(
    output: Annotated[Optional[Path], typer.Argument(help="Destination file (stdout when omitted)")] = None,
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Export the library as a JSON document."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        store = open_store(storage_dir, namespace)
        text = dumps(store.load(), indent=2)
        if output is None:
            typer.echo(text)
            return
        try:
            output.write_text(text + "\n", encoding="utf-8")
        except OSError as e:
            typer.echo(f"Error: Cannot write {output}: {e}", err=True)
            raise typer.Exit(3)
        typer.echo(f"OK: Exported library to {output}")


@app.command("import")
def import_cmd(
    source: Annotated[Path, typer.Argument(help="Library JSON document", exists=True, dir_okay=False, readable=True)],
    merge: Annotated[
        bool,
        typer.Option("--merge/--replace", help="Merge into the stored library instead of replacing it"),
    ] = False,
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Validate and install a library document."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        try:
            incoming = import_library(source.read_text(encoding="utf-8"))
        except LibraryParseError as e:
            typer.echo(f"Error: Not a JSON document: {e}", err=True)
            raise typer.Exit(2)
        except LibraryValidationError as e:
            typer.echo(f"Error: Invalid library at {e.path or '<root>'}: {e.reason}", err=True)
            raise typer.Exit(2)
        except UnicodeDecodeError as e:
            typer.echo(f"Error: Cannot decode {source}: {e}", err=True)
            raise typer.Exit(2)

        store = open_store(storage_dir, namespace)
        lib = merge_library(store.load(), incoming) if merge else incoming
        save_or_exit(store, lib)
        typer.echo(
            f"OK: Imported {len(incoming.name_tables)} name table(s) and {len(incoming.profiles)} profile(s)"
        )


@app.command()
def template(
    output: Annotated[Optional[Path], typer.Argument(help="Destination file (stdout when omitted)")] = None,
    verbose: VerboseOption = False,
) -> None:
    """Write an example library document to start from."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        text = json.dumps(library_template(), indent=2)
        if output is None:
            typer.echo(text)
            return
        try:
            output.write_text(text + "\n", encoding="utf-8")
        except OSError as e:
            typer.echo(f"Error: Cannot write {output}: {e}", err=True)
            raise typer.Exit(3)
        typer.echo(f"OK: Wrote template to {output}")


@app.command()
def resolve(
    category: CategoryArgument,
    address: Annotated[str, typer.Argument(help="Address (decimal or 0x hex)")],
    profile: Annotated[Optional[str], typer.Option("--profile", help="Profile tag (default: active profile)")] = None,
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """
    Print the label of an address through a profile's name table.

    Prints "-" when the profile has no name table, the reference dangles, or
    the address is unlabelled.
    """
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        try:
            addr = parse_address(address)
        except ValueError as e:
            typer.echo(f"Error: Invalid address: {e}", err=True)
            raise typer.Exit(2)

        lib = open_store(storage_dir, namespace).load()
        cfg = lib.profiles.get(profile) if profile is not None else active_profile(lib)
        if cfg is None:
            typer.echo("-")
            return
        query = ReadQuery(type=READ_FUNCTION_BY_CATEGORY[category], address=addr, quantity=1)
        typer.echo(resolve_profile_address_name(lib, cfg, query) or "-")


@app.command("migrate-legacy")
def migrate_legacy(
    tag: Annotated[str, typer.Argument(help="Name table tag to store legacy names under")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Copy names saved by the old per-bucket layout into a name table."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        store = open_store(storage_dir, namespace)
        lib = store.load()
        migrated = store.migrate_legacy_names(lib, tag)
        if migrated is lib:
            typer.echo("No legacy names found")
            return
        save_or_exit(store, migrated)
        typer.echo(f"OK: Migrated legacy names into {tag}")


    # ============================================================================
    # Name table commands
    # ============================================================================


@names_app.command("set")
def names_set(
    tag: Annotated[str, typer.Argument(help="Name table tag (created if missing)")],
    category: CategoryArgument,
    address: Annotated[str, typer.Argument(help="Address (decimal or 0x hex)")],
    label: Annotated[str, typer.Argument(help="Human-readable label")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Label one address."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        try:
            addr = parse_address(address)
        except ValueError as e:
            typer.echo(f"Error: Invalid address: {e}", err=True)
            raise typer.Exit(2)

        store = open_store(storage_dir, namespace)

        def apply(lib: Library) -> Library:
            nts = lib.name_tables.get(tag) or create_empty_name_table_set()
            return upsert_name_table_set(lib, tag, set_name(nts, category, addr, label))

        update_library(store, apply)
        typer.echo(f"OK: {tag} {category.value}[{addr}] = {label}")


@names_app.command("remove")
def names_remove(
    tag: Annotated[str, typer.Argument(help="Name table tag")],
    category: CategoryArgument,
    address: Annotated[str, typer.Argument(help="Address (decimal or 0x hex)")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Remove the label of one address."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        try:
            addr = parse_address(address)
        except ValueError as e:
            typer.echo(f"Error: Invalid address: {e}", err=True)
            raise typer.Exit(2)

        store = open_store(storage_dir, namespace)
        lib = store.load()
        nts = lib.name_tables.get(tag)
        if nts is None:
            typer.echo(f"Error: Unknown name table: {tag!r}", err=True)
            raise typer.Exit(2)
        updated = remove_name(nts, category, addr)
        if updated is nts:
            typer.echo(f"{tag} {category.value}[{addr}] has no label")
            return
        save_or_exit(store, upsert_name_table_set(lib, tag, updated))
        typer.echo(f"OK: Removed {tag} {category.value}[{addr}]")


@names_app.command("list")
def names_list(
    tag: Annotated[str, typer.Argument(help="Name table tag")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """List all labels of a name table."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        nts = open_store(storage_dir, namespace).load().name_tables.get(tag)
        if nts is None:
            typer.echo(f"Error: Unknown name table: {tag!r}", err=True)
            raise typer.Exit(2)

        if json_output:
            out = {cat.value: {str(a): n for a, n in nts.names.bucket(cat).items()} for cat in NameTableCategory}
            typer.echo(json.dumps(out, indent=2))
            return
        for cat in NameTableCategory:
            for addr, label in nts.names.bucket(cat).items():
                typer.echo(f"{cat.value:<8} {addr:>5}  {format_address(addr)}  {label}")


@names_app.command("delete")
def names_delete(
    tag: Annotated[str, typer.Argument(help="Name table tag")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Delete a name table. Profiles that reference it keep the (now dangling) reference."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        update_library(open_store(storage_dir, namespace), lambda lib: delete_name_table_set(lib, tag))
        typer.echo(f"OK: Deleted name table {tag}")


@names_app.command("import-csv")
def names_import_csv(
    tag: Annotated[str, typer.Argument(help="Name table tag (created if missing)")],
    category: CategoryArgument,
    source: Annotated[Path, typer.Argument(help="CSV with address,label rows", exists=True, dir_okay=False)],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Label many addresses of one category from a CSV file."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        try:
            names = load_name_csv(source)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            typer.echo(f"Error: Cannot read {source}: {e}", err=True)
            raise typer.Exit(2)

        def apply(lib: Library) -> Library:
            nts = lib.name_tables.get(tag) or create_empty_name_table_set()
            for addr, label in names.items():
                nts = set_name(nts, category, addr, label)
            return upsert_name_table_set(lib, tag, nts)

        update_library(open_store(storage_dir, namespace), apply)
        typer.echo(f"OK: Imported {len(names)} label(s) into {tag} {category.value}")


    # ============================================================================
    # Profile commands
    # ============================================================================


@profile_app.command("create")
def profile_create(
    tag: Annotated[str, typer.Argument(help="Profile tag (replaced if it exists)")],
    names: Annotated[Optional[str], typer.Option("--names", help="Name table tag to reference")] = None,
    device_id: Annotated[int, typer.Option("--device-id", help="Modbus device (unit) ID")] = 1,
    baud_rate: Annotated[int, typer.Option("--baud-rate", help="Serial baud rate")] = 9600,
    data_bits: Annotated[int, typer.Option("--data-bits", help="Serial data bits")] = 8,
    parity: Annotated[Parity, typer.Option("--parity", help="Serial parity")] = Parity.NONE,
    stop_bits: Annotated[int, typer.Option("--stop-bits", help="Serial stop bits")] = 1,
    activate: Annotated[bool, typer.Option("--activate", help="Make this the active profile")] = False,
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Create or replace a profile."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        cfg = replace(
            default_configuration(),
            name_table_set_id=names,
            connection_settings=ConnectionSettings(
                device_id=device_id,
                options=SerialOptions(baud_rate=baud_rate, data_bits=data_bits, parity=parity, stop_bits=stop_bits),
            ),
        )

        def apply(lib: Library) -> Library:
            lib = upsert_profile(lib, tag, cfg)
            return set_active_profile(lib, tag) if activate else lib

        lib = update_library(open_store(storage_dir, namespace), apply)
        if names is not None and names not in lib.name_tables:
            typer.echo(f"Warning: name table {names!r} does not exist yet", err=True)
        typer.echo(f"OK: Saved profile {tag}")


@profile_app.command("delete")
def profile_delete(
    tag: Annotated[str, typer.Argument(help="Profile tag")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Delete a profile (the active tag is left as is)."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        update_library(open_store(storage_dir, namespace), lambda lib: delete_profile(lib, tag))
        typer.echo(f"OK: Deleted profile {tag}")


@profile_app.command("activate")
def profile_activate(
    tag: Annotated[Optional[str], typer.Argument(help="Profile tag; omit to clear")] = None,
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Set or clear the active profile."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        lib = update_library(open_store(storage_dir, namespace), lambda lib: set_active_profile(lib, tag))
        if tag is None:
            typer.echo("OK: Cleared active profile")
            return
        if tag not in lib.profiles:
            typer.echo(f"Warning: profile {tag!r} does not exist", err=True)
        typer.echo(f"OK: Active profile is {tag}")


@profile_app.command("shortcut")
def profile_shortcut(
    tag: Annotated[str, typer.Argument(help="Profile tag")],
    name: Annotated[str, typer.Argument(help="Shortcut name")],
    function: Annotated[WriteFunction, typer.Argument(help="write_coils or write_registers")],
    address: Annotated[str, typer.Argument(help="Start address (decimal or 0x hex)")],
    values: Annotated[list[str], typer.Argument(help="Values (bools for coils, 16-bit ints for registers)")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
) -> None:
    """Add or replace a write shortcut on a profile."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        try:
            addr = parse_address(address)
            if function == WriteFunction.WRITE_COILS:
                parsed: tuple[int, ...] | tuple[bool, ...] = tuple(parse_bool(v) for v in values)
            else:
                parsed = tuple(parse_register(v) for v in values)
        except ValueError as e:
            typer.echo(f"Error: Invalid value: {e}", err=True)
            raise typer.Exit(2)

        store = open_store(storage_dir, namespace)
        lib = store.load()
        cfg = lib.profiles.get(tag)
        if cfg is None:
            typer.echo(f"Error: Unknown profile: {tag!r}", err=True)
            raise typer.Exit(2)
        shortcuts = {**cfg.write_shortcuts, name: WriteQuery(type=function, address=addr, values=parsed)}
        save_or_exit(store, upsert_profile(lib, tag, replace(cfg, write_shortcuts=shortcuts)))
        typer.echo(f"OK: Saved shortcut {name} on {tag}")


@profile_app.command("show")
def profile_show(
    tag: Annotated[str, typer.Argument(help="Profile tag")],
    storage_dir: StorageDirOption = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show one profile."""
    setup_logging(verbose)
    with exit_on_unexpected(verbose):
        lib = open_store(storage_dir, namespace).load()
        cfg = lib.profiles.get(tag)
        if cfg is None:
            typer.echo(f"Error: Unknown profile: {tag!r}", err=True)
            raise typer.Exit(2)

        if json_output:
            typer.echo(json.dumps(encode_configuration(cfg), indent=2))
            return

        opts = cfg.connection_settings.options
        names = cfg.name_table_set_id
        if names is not None and names not in lib.name_tables:
            names = f"{names} (missing)"
        typer.echo(f"Profile:     {tag}")
        typer.echo(f"Device ID:   {cfg.connection_settings.device_id}")
        typer.echo(f"Serial:      {opts.baud_rate} {opts.data_bits}{Parity(opts.parity).value[0].upper()}{opts.stop_bits}")
        typer.echo(f"Name table:  {names or '-'}")
        for name, q in cfg.write_shortcuts.items():
            label = resolve_profile_address_name(lib, cfg, q)
            target = f"{REGISTER_PREFIXES[q.type]}{q.address}" + (f" ({label})" if label else "")
            shown = ", ".join(str(v).lower() if isinstance(v, bool) else str(v) for v in q.values)
            typer.echo(f"Shortcut:    {name}: {q.type.value} {target} <- {shown}")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"modbus-profiles {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """mbprofiles - manage Modbus name tables and connection profiles."""
    pass


if __name__ == "__main__":
    app()
