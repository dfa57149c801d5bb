"""Loader Template Expander.

Turns (table, field, entry point) triples into the per-command assignment
lines of a generated loader routine. Entry point names are taken from
`Command.name` and never retyped, so the runtime lookup string is always the
registry's canonical command name.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .models import Command

LOAD_HELPER = "_load_proc"
LOAD_LINE_TEMPLATE = (
    "{indent}{table}.{field} = "
    + LOAD_HELPER
    + '(get_proc_addr, handle, b"{entry_point}", {prototype})'
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class LoadEntry:
    """One generated assignment.

    Attributes:
        table: Variable holding the command table inside the loader.
        field: Table field receiving the function pointer.
        entry_point: Name passed to the get-proc-addr callback, verbatim.
        prototype: Name of the function prototype the pointer is cast to.
    """

    table: str
    field: str
    entry_point: str
    prototype: str


def command_field_name(command_name: str) -> str:
    """Table field name for a command: `vkCreateInstance` -> `CreateInstance`."""
    if command_name.startswith("vk") and command_name[2:3].isupper():
        return command_name[2:]
    return command_name


def prototype_name(command_name: str) -> str:
    return f"PFN_{command_name}"


def load_entries(table: str, commands: Iterable[Command]) -> tuple[LoadEntry, ...]:
    return tuple(
        LoadEntry(
            table=table,
            field=command_field_name(command.name),
            entry_point=command.name,
            prototype=prototype_name(command.name),
        )
        for command in commands
    )


def expand_load_entries(entries: Sequence[LoadEntry], *, indent: str = "    ") -> list[str]:
    """Expand load entries into loader source lines, one per entry.

    Raises:
        ValueError: If a name is not a plain identifier (it could not be
            emitted verbatim) or two entries target the same table field.
    """
    lines: list[str] = []
    seen: set[tuple[str, str]] = set()
    for entry in entries:
        for value in (entry.table, entry.field, entry.entry_point, entry.prototype):
            if not _IDENTIFIER_RE.match(value):
                raise ValueError(f"Not an identifier in load entry: {value!r}")
        key = (entry.table, entry.field)
        if key in seen:
            raise ValueError(f"Duplicate table field: {entry.table}.{entry.field}")
        seen.add(key)
        lines.append(
            LOAD_LINE_TEMPLATE.format(
                indent=indent,
                table=entry.table,
                field=entry.field,
                entry_point=entry.entry_point,
                prototype=entry.prototype,
            )
        )
    return lines
