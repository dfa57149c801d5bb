"""Emitter: filtered entity set -> ctypes binding modules.

Each kept TypeDef is emitted into one of four type modules, chosen by the kind
it resolves to, in global topological order. Structs and unions are declared
up front as empty `ctypes.Structure`/`ctypes.Union` subclasses so pointer
members can name them, then completed with `_fields_` assignments in
dependency order. Commands become `FUNCTYPE` prototypes, and the loader
module carries one command table per kept FeatureGroup and per dispatch
level.

Nothing here depends on the host: the generated package decides between
`CFUNCTYPE` and `WINFUNCTYPE` itself when it is imported.
"""

import keyword
import re
from dataclasses import dataclass

from .errors import EmissionFailure
from .expander import command_field_name, expand_load_entries, load_entries, prototype_name
from .models import (
    COMPOSITE_KINDS,
    EMITTED_KINDS,
    GROUP_FEATURE,
    KIND_ALIAS,
    KIND_BASETYPE,
    KIND_BITMASK,
    KIND_ENUM,
    KIND_EXTERNAL,
    KIND_FUNCPOINTER,
    KIND_HANDLE,
    KIND_STRUCT,
    KIND_UNION,
    Command,
    FeatureGroup,
    FilteredRegistry,
    Member,
    Registry,
    TypeDef,
)
from .resolver import (
    DISPATCH_DEVICE,
    DISPATCH_GLOBAL,
    DISPATCH_INSTANCE,
    dispatch_level,
    resolve_alias,
)
from .writer import (
    MODULE_BASE_TYPES,
    MODULE_COMMANDS,
    MODULE_ENUMS,
    MODULE_HANDLES,
    MODULE_LOADER,
    MODULE_ORDER,
    MODULE_TYPES,
    ExternalImport,
    InitModuleSpec,
    InitReExport,
    ModuleSpec,
    SiblingImport,
)

C_TO_CTYPES = {
    "void": "None",
    "char": "ctypes.c_char",
    "float": "ctypes.c_float",
    "double": "ctypes.c_double",
    "int": "ctypes.c_int",
    "int8_t": "ctypes.c_int8",
    "uint8_t": "ctypes.c_uint8",
    "int16_t": "ctypes.c_int16",
    "uint16_t": "ctypes.c_uint16",
    "int32_t": "ctypes.c_int32",
    "uint32_t": "ctypes.c_uint32",
    "int64_t": "ctypes.c_int64",
    "uint64_t": "ctypes.c_uint64",
    "size_t": "ctypes.c_size_t",
}

# Platform types used by value, mapped to size-compatible ctypes types.
# Anything else from a platform header is only used through pointers and
# becomes an opaque structure.
PLATFORM_TYPES = {
    "DWORD": "ctypes.c_uint32",
    "HANDLE": "ctypes.c_void_p",
    "HINSTANCE": "ctypes.c_void_p",
    "HWND": "ctypes.c_void_p",
    "HMONITOR": "ctypes.c_void_p",
    "LPCWSTR": "ctypes.c_wchar_p",
    "Window": "ctypes.c_ulong",
    "VisualID": "ctypes.c_ulong",
    "RROutput": "ctypes.c_ulong",
    "xcb_window_t": "ctypes.c_uint32",
    "xcb_visualid_t": "ctypes.c_uint32",
    "zx_handle_t": "ctypes.c_uint32",
    "GgpFrameToken": "ctypes.c_uint32",
    "GgpStreamDescriptor": "ctypes.c_uint32",
    "NvSciBufAttrList": "ctypes.c_void_p",
    "NvSciBufObj": "ctypes.c_void_p",
    "NvSciSyncAttrList": "ctypes.c_void_p",
    "NvSciSyncObj": "ctypes.c_void_p",
    "NvSciSyncFence": "ctypes.c_uint64 * 6",
}

# Video codec types used by value are enums from vulkan_video.h.
STDVIDEO_PREFIX = "StdVideo"
STDVIDEO_ENUM_CTYPE = "ctypes.c_int32"

MODULE_KINDS = {
    KIND_EXTERNAL: MODULE_BASE_TYPES,
    KIND_BASETYPE: MODULE_BASE_TYPES,
    KIND_ENUM: MODULE_ENUMS,
    KIND_BITMASK: MODULE_ENUMS,
    KIND_HANDLE: MODULE_HANDLES,
    KIND_STRUCT: MODULE_TYPES,
    KIND_UNION: MODULE_TYPES,
    KIND_FUNCPOINTER: MODULE_TYPES,
}

LEVEL_TABLES: tuple[tuple[str, str, str], ...] = (
    (DISPATCH_GLOBAL, "LibraryCommands", "load_library_commands"),
    (DISPATCH_INSTANCE, "InstanceCommands", "load_instance_commands"),
    (DISPATCH_DEVICE, "DeviceCommands", "load_device_commands"),
)
GET_INSTANCE_PROC_ADDR = "vkGetInstanceProcAddr"
TABLE_VARIABLE = "table"
# Module-level names the generated code binds besides registry entities.
RESERVED_NAMES = frozenset({"ctypes", "sys", "_load_proc"})


@dataclass(frozen=True)
class GeneratedBindings:
    """Everything the writer needs, plus what was emitted.

    Attributes:
        modules: Module specs in MODULE_ORDER.
        init: Re-export manifest for the package __init__.py.
        type_sequence: Emitted TypeDef names in definition order across all
            modules; each appears after every type it structurally needs.
        group_tables: Kept FeatureGroup name -> command table class name.
        level_tables: Dispatch level -> command table class name.
    """

    modules: tuple[ModuleSpec, ...]
    init: InitModuleSpec
    type_sequence: tuple[str, ...]
    group_tables: dict[str, str]
    level_tables: dict[str, str]


# ===--- Names ---=== #


def group_identifier(group_name: str) -> str:
    """Python identifier for a FeatureGroup name: `core-1.0` -> `core_1_0`."""
    identifier = re.sub(r"\W", "_", group_name)
    if identifier[:1].isdigit():
        identifier = "_" + identifier
    return identifier


def table_name(group_name: str) -> str:
    return f"{group_identifier(group_name)}_Commands"


def loader_name(group_name: str) -> str:
    return f"load_{group_identifier(group_name)}"


class _SymbolTable:
    """Every module-level name the package exports, with its module."""

    def __init__(self) -> None:
        self.owner: dict[str, str] = {}
        self.exports: dict[str, list[str]] = {stem: [] for stem in MODULE_ORDER}

    def add(self, name: str, module: str) -> None:
        if not name.isidentifier() or keyword.iskeyword(name):
            raise EmissionFailure(f"{module}.{name}", "not a valid Python identifier")
        if name in RESERVED_NAMES:
            raise EmissionFailure(f"{module}.{name}", "name is reserved by the generated code")
        if name in self.owner:
            raise EmissionFailure(
                f"{module}.{name}", f"name already defined in {self.owner[name]}"
            )
        self.owner[name] = module
        self.exports[module].append(name)


# ===--- Type expressions ---=== #


def _scalar_expr(type_name: str) -> str:
    return C_TO_CTYPES.get(type_name, type_name)


def pointer_expr(registry: Registry, type_name: str, depth: int) -> str:
    """ctypes expression for `type_name` behind `depth` levels of pointer.

    `void*` and `char*` use the dedicated ctypes pointer types. Pointers to
    structs and unions name the defining class rather than an alias, since
    aliases are bound later than the forward declarations.
    """
    if depth == 0:
        return _scalar_expr(type_name)
    if type_name == "void":
        expr, depth = "ctypes.c_void_p", depth - 1
    elif type_name == "char":
        expr, depth = "ctypes.c_char_p", depth - 1
    else:
        target = resolve_alias(registry, type_name)
        expr = target.name if target.kind in COMPOSITE_KINDS else _scalar_expr(type_name)
    for _ in range(depth):
        expr = f"ctypes.POINTER({expr})"
    return expr


def array_expr(expr: str, dims: tuple[str, ...]) -> str:
    """Nest array dimensions, outermost first: `float m[3][4]` -> `(c_float * 4) * 3`."""
    for dim in reversed(dims):
        if " " in expr:
            expr = f"({expr})"
        expr = f"{expr} * {dim}"
    return expr


def member_expr(registry: Registry, member: Member) -> str:
    return array_expr(
        pointer_expr(registry, member.type_name, member.pointer_depth), member.array_dims
    )


def param_expr(registry: Registry, param: Member) -> str:
    """Like member_expr, but array parameters decay to a pointer."""
    if not param.array_dims:
        return member_expr(registry, param)
    element = array_expr(
        pointer_expr(registry, param.type_name, param.pointer_depth), param.array_dims[1:]
    )
    return f"ctypes.POINTER({element})"


def field_entry(registry: Registry, member: Member) -> str:
    if member.bitwidth is not None:
        return f'("{member.name}", {member_expr(registry, member)}, {member.bitwidth})'
    return f'("{member.name}", {member_expr(registry, member)})'


def prototype_expr(registry: Registry, returns: Member, params: tuple[Member, ...]) -> str:
    args = [member_expr(registry, returns)]
    args.extend(param_expr(registry, p) for p in params)
    return f"FUNCTYPE({', '.join(args)})"


def format_value(value: int | float | bytes) -> str:
    if isinstance(value, (bytes, float)):
        return repr(value)
    return str(value)


# ===--- Module assignment ---=== #


def module_for(registry: Registry, typedef: TypeDef) -> str | None:
    """Generated module declaring `typedef`, or None when it is not emitted."""
    if typedef.kind not in EMITTED_KINDS:
        return None
    if typedef.kind == KIND_ALIAS:
        typedef = resolve_alias(registry, typedef.name)
    return MODULE_KINDS.get(typedef.kind)


def value_used_types(filtered: FilteredRegistry) -> frozenset[str]:
    """Types some kept declaration uses by value rather than through a pointer."""
    registry = filtered.registry
    used: set[str] = set()

    def _visit(slots) -> None:
        for slot in slots:
            if slot is not None and slot.pointer_depth == 0:
                used.add(slot.type_name)

    for name in filtered.types:
        typedef = registry.types[name]
        _visit(typedef.members)
        _visit((typedef.underlying, typedef.returns))
    for name in filtered.commands:
        command = registry.commands[name]
        _visit(command.params)
        _visit((command.returns,))
    return frozenset(used)


def _external_lines(typedef: TypeDef, by_value: bool) -> list[str]:
    name = typedef.name
    if name in PLATFORM_TYPES:
        return [f"{name} = {PLATFORM_TYPES[name]}"]
    if by_value and name.startswith(STDVIDEO_PREFIX):
        return [f"{name} = {STDVIDEO_ENUM_CTYPE}"]
    if by_value:
        raise EmissionFailure(name, "platform type used by value has no known ctypes layout")
    body = f'    """Opaque type declared in {typedef.header}."""' if typedef.header else "    pass"
    return ["", "", f"class {name}(ctypes.Structure):", body, "", ""]


# ===--- Constants ---=== #


def _resolved_value(registry: Registry, name: str) -> int | float | bytes:
    constant = registry.constants[name]
    seen = {name}
    while constant.alias is not None:
        if constant.alias in seen:
            raise EmissionFailure(name, "cyclic enum alias")
        seen.add(constant.alias)
        constant = registry.constants[constant.alias]
    return constant.value


def _enum_owner(registry: Registry, type_name: str | None) -> str | None:
    if type_name is None or type_name not in registry.types:
        return None
    owner = resolve_alias(registry, type_name)
    return owner.name if owner.kind == KIND_ENUM else None


def partition_constants(
    filtered: FilteredRegistry,
) -> tuple[dict[str, list[str]], list[str]]:
    """Split kept constants into enum values (by owning enum) and the rest."""
    registry = filtered.registry
    kept_types = set(filtered.types)
    enum_values: dict[str, list[str]] = {}
    others: list[str] = []
    for name in filtered.constants:
        owner = _enum_owner(registry, registry.constants[name].type_name)
        if owner is not None and owner in kept_types:
            enum_values.setdefault(owner, []).append(name)
        else:
            others.append(name)
    return enum_values, others


def _constant_alias_line(
    registry: Registry, name: str, module: str, symbols: _SymbolTable
) -> str:
    target = registry.constants[name].alias
    target_module = symbols.owner.get(target)
    if (
        target_module is not None
        and registry.constants[target].alias is None
        and MODULE_ORDER.index(target_module) <= MODULE_ORDER.index(module)
    ):
        return f"{name} = {target}"
    return f"{name} = {format_value(_resolved_value(registry, name))}"


# ===--- Module bodies ---=== #


def _section(title: str) -> list[str]:
    return ["", f"# ===--- {title} ---=== #", ""]


def _collapse_blank_lines(lines: list[str]) -> list[str]:
    """Drop blank lines beyond two in a row, and any leading blank lines."""
    result: list[str] = []
    blanks = 0
    for line in lines:
        if line:
            blanks = 0
        else:
            blanks += 1
            if blanks > 2 or not result:
                continue
        result.append(line)
    return result


def _exports_block(names: list[str]) -> list[str]:
    if not names:
        return ["__all__ = []", ""]
    return ["__all__ = ["] + [f'    "{name}",' for name in names] + ["]", ""]


def _version_helpers(filtered: FilteredRegistry, symbols: _SymbolTable) -> list[str]:
    registry = filtered.registry
    lines = [
        "if sys.platform == \"win32\":",
        "    FUNCTYPE = ctypes.WINFUNCTYPE",
        "else:",
        "    FUNCTYPE = ctypes.CFUNCTYPE",
        "",
        "",
        "def VK_MAKE_API_VERSION(variant, major, minor, patch):",
        "    return (variant << 29) | (major << 22) | (minor << 12) | patch",
        "",
        "",
        "def VK_API_VERSION_VARIANT(version):",
        "    return version >> 29",
        "",
        "",
        "def VK_API_VERSION_MAJOR(version):",
        "    return (version >> 22) & 0x7F",
        "",
        "",
        "def VK_API_VERSION_MINOR(version):",
        "    return (version >> 12) & 0x3FF",
        "",
        "",
        "def VK_API_VERSION_PATCH(version):",
        "    return version & 0xFFF",
        "",
        "",
    ]
    for helper in (
        "FUNCTYPE",
        "VK_MAKE_API_VERSION",
        "VK_API_VERSION_VARIANT",
        "VK_API_VERSION_MAJOR",
        "VK_API_VERSION_MINOR",
        "VK_API_VERSION_PATCH",
    ):
        symbols.add(helper, MODULE_BASE_TYPES)

    kept_constants = set(filtered.constants)
    for group_name in filtered.groups:
        group = registry.groups[group_name]
        version = group.version
        if group.kind != GROUP_FEATURE or version is None:
            continue
        name = f"VK_API_VERSION_{version.major}_{version.minor}"
        if name in kept_constants or name in symbols.owner:
            continue
        lines.append(f"{name} = VK_MAKE_API_VERSION(0, {version.major}, {version.minor}, 0)")
        symbols.add(name, MODULE_BASE_TYPES)

    parts = registry.version.split(".")
    if len(parts) == 3 and parts[2].isdigit() and "VK_HEADER_VERSION" not in kept_constants:
        lines.append(f"VK_HEADER_VERSION = {int(parts[2])}")
        symbols.add("VK_HEADER_VERSION", MODULE_BASE_TYPES)
    if "VK_NULL_HANDLE" not in kept_constants:
        lines.append("VK_NULL_HANDLE = 0")
        symbols.add("VK_NULL_HANDLE", MODULE_BASE_TYPES)
    lines.append("")
    return lines


def _base_types_body(
    filtered: FilteredRegistry,
    names: list[str],
    constants: list[str],
    symbols: _SymbolTable,
) -> list[str]:
    registry = filtered.registry
    by_value = value_used_types(filtered)
    lines = _version_helpers(filtered, symbols)

    lines.extend(_section("Base and platform types"))
    for name in names:
        typedef = registry.types[name]
        if typedef.kind == KIND_EXTERNAL:
            lines.extend(_external_lines(typedef, name in by_value))
        elif typedef.kind == KIND_ALIAS:
            lines.append(f"{name} = {typedef.alias}")
        else:
            lines.append(f"{name} = {member_expr(registry, typedef.underlying)}")
        symbols.add(name, MODULE_BASE_TYPES)
    lines.append("")

    lines.extend(_section("Constants"))
    aliases: list[str] = []
    for name in constants:
        constant = registry.constants[name]
        if constant.alias is not None:
            aliases.append(name)
            continue
        lines.append(f"{name} = {format_value(constant.value)}")
        symbols.add(name, MODULE_BASE_TYPES)
    for name in aliases:
        lines.append(_constant_alias_line(registry, name, MODULE_BASE_TYPES, symbols))
        symbols.add(name, MODULE_BASE_TYPES)
    lines.append("")
    return lines


def _enums_body(
    filtered: FilteredRegistry,
    names: list[str],
    enum_values: dict[str, list[str]],
    symbols: _SymbolTable,
) -> list[str]:
    registry = filtered.registry
    lines: list[str] = []
    aliases: list[str] = []
    for name in names:
        typedef = registry.types[name]
        if typedef.kind == KIND_ALIAS:
            lines.append(f"{name} = {typedef.alias}")
            symbols.add(name, MODULE_ENUMS)
            continue
        if typedef.kind == KIND_BITMASK:
            lines.append(f"{name} = {member_expr(registry, typedef.underlying)}")
            symbols.add(name, MODULE_ENUMS)
            continue

        lines.extend(_section(name))
        base = "ctypes.c_uint64" if typedef.bitwidth == 64 else "ctypes.c_int32"
        lines.append(f"{name} = {base}")
        symbols.add(name, MODULE_ENUMS)
        for value_name in enum_values.get(name, ()):
            constant = registry.constants[value_name]
            if constant.alias is not None:
                aliases.append(value_name)
                continue
            lines.append(f"{value_name} = {format_value(constant.value)}")
            symbols.add(value_name, MODULE_ENUMS)
        lines.append("")

    if aliases:
        lines.append("")
        lines.extend(_section("Enum value aliases"))
        for name in aliases:
            lines.append(_constant_alias_line(registry, name, MODULE_ENUMS, symbols))
            symbols.add(name, MODULE_ENUMS)
    lines.append("")
    return lines


def _handles_body(
    filtered: FilteredRegistry, names: list[str], symbols: _SymbolTable
) -> list[str]:
    registry = filtered.registry
    lines: list[str] = []
    for name in names:
        typedef = registry.types[name]
        if typedef.kind == KIND_ALIAS:
            lines.append(f"{name} = {typedef.alias}")
        elif typedef.dispatchable:
            lines.append(f"{name} = ctypes.c_void_p")
        else:
            lines.append(f"{name} = ctypes.c_uint64")
        symbols.add(name, MODULE_HANDLES)
    lines.append("")
    return lines


def _types_body(
    filtered: FilteredRegistry, names: list[str], symbols: _SymbolTable
) -> list[str]:
    registry = filtered.registry
    lines: list[str] = []

    lines.extend(_section("Forward declarations"))
    for name in names:
        typedef = registry.types[name]
        if typedef.kind in COMPOSITE_KINDS:
            base = "ctypes.Union" if typedef.kind == KIND_UNION else "ctypes.Structure"
            lines.extend(["", "", f"class {name}({base}):", "    pass"])
    lines.extend(["", ""])

    lines.extend(_section("Definitions"))
    for name in names:
        typedef = registry.types[name]
        if typedef.kind == KIND_ALIAS:
            lines.append(f"{name} = {typedef.alias}")
        elif typedef.kind == KIND_FUNCPOINTER:
            lines.append(
                f"{name} = {prototype_expr(registry, typedef.returns, typedef.members)}"
            )
        else:
            lines.append(f"{name}._fields_ = [")
            lines.extend(f"    {field_entry(registry, m)}," for m in typedef.members)
            lines.append("]")
        symbols.add(name, MODULE_TYPES)
    lines.append("")
    return lines


def _platform_comment(filtered: FilteredRegistry, name: str) -> list[str]:
    tags = filtered.command_platforms.get(name)
    if not tags:
        return []
    return [f"# Platform: {', '.join(sorted(tags))}"]


def _commands_body(
    filtered: FilteredRegistry, symbols: _SymbolTable
) -> list[str]:
    registry = filtered.registry
    kept = set(filtered.commands)
    lines: list[str] = []
    aliases: list[Command] = []
    for name in filtered.commands:
        command = registry.commands[name]
        if command.alias is not None:
            aliases.append(command)
            continue
        lines.extend(_platform_comment(filtered, name))
        lines.append(
            f"{prototype_name(name)} = "
            f"{prototype_expr(registry, command.returns, command.params)}"
        )
        symbols.add(prototype_name(name), MODULE_COMMANDS)

    if aliases:
        lines.append("")
        lines.extend(_section("Command aliases"))
        for command in aliases:
            if command.alias in kept and registry.commands[command.alias].alias is None:
                rhs = prototype_name(command.alias)
            else:
                rhs = prototype_expr(registry, command.returns, command.params)
            lines.extend(_platform_comment(filtered, command.name))
            lines.append(f"{prototype_name(command.name)} = {rhs}")
            symbols.add(prototype_name(command.name), MODULE_COMMANDS)
    lines.append("")
    return lines


def _docstring_lines(doc: str) -> list[str]:
    first, *rest = doc.split("\n")
    if not rest:
        return [f'    """{first}"""']
    return [f'    """{first}', *(f"    {line}" if line else "" for line in rest), '    """']


def group_loader_doc(registry: Registry, group: FeatureGroup) -> str:
    """Docstring of a per-group loader: what it loads and what gates it."""
    lines = [f"Load the {group.name} commands through get_proc_addr(handle, name)."]
    details: list[str] = []
    if group.ext_type:
        details.append(f"Extension type: {group.ext_type}.")
    if group.platform:
        platform = registry.platforms.get(group.platform)
        protect = group.protect or (platform.protect if platform else None)
        if protect:
            details.append(f"Platform: {group.platform} (guarded by {protect} in C).")
        else:
            details.append(f"Platform: {group.platform}.")
    if group.promoted_to:
        details.append(f"Promoted to {group.promoted_to}.")
    if details:
        lines.append("")
        lines.extend(details)
    return "\n".join(lines)


def _table_lines(
    registry: Registry, table: str, loader: str, commands: tuple[str, ...], doc: str
) -> list[str]:
    entries = load_entries(TABLE_VARIABLE, (registry.commands[n] for n in commands))
    try:
        load_lines = expand_load_entries(entries)
    except ValueError as err:
        raise EmissionFailure(table, str(err)) from err

    lines = ["", "", f"class {table}(ctypes.Structure):"]
    if commands:
        lines.append("    _fields_ = [")
        lines.extend(
            f'        ("{command_field_name(n)}", {prototype_name(n)}),' for n in commands
        )
        lines.append("    ]")
    else:
        lines.append("    _fields_ = []")
    lines.extend(
        [
            "",
            "",
            f"def {loader}(get_proc_addr, handle):",
        ]
    )
    lines.extend(_docstring_lines(doc))
    lines.append(f"    {TABLE_VARIABLE} = {table}()")
    lines.extend(load_lines)
    lines.append(f"    return {TABLE_VARIABLE}")
    return lines


def _loader_body(
    filtered: FilteredRegistry,
    symbols: _SymbolTable,
) -> tuple[list[str], dict[str, str], dict[str, str], tuple[str, ...]]:
    """Loader module body.

    Returns:
        (lines, group tables, level tables, names re-exported by __init__).
        Per-group tables stay reachable through COMMAND_TABLES and the
        loader module itself.
    """
    registry = filtered.registry
    public: list[str] = []
    lines = [
        "def _load_proc(get_proc_addr, handle, name, prototype):",
        "    return ctypes.cast(get_proc_addr(handle, name), prototype)",
    ]

    group_tables: dict[str, str] = {}
    identifiers: dict[str, str] = {}
    for group_name in filtered.groups:
        identifier = group_identifier(group_name)
        if identifier in identifiers:
            raise EmissionFailure(
                group_name,
                f"table name {identifier!r} collides with group {identifiers[identifier]!r}",
            )
        identifiers[identifier] = group_name
        table, loader = table_name(group_name), loader_name(group_name)
        lines.extend(
            _table_lines(
                registry,
                table,
                loader,
                filtered.group_commands.get(group_name, ()),
                group_loader_doc(registry, registry.groups[group_name]),
            )
        )
        symbols.add(table, MODULE_LOADER)
        symbols.add(loader, MODULE_LOADER)
        group_tables[group_name] = table

    levels: dict[str, list[str]] = {level: [] for level, _, _ in LEVEL_TABLES}
    for name in filtered.commands:
        levels[dispatch_level(registry, name)].append(name)

    level_tables: dict[str, str] = {}
    level_docs = {
        DISPATCH_GLOBAL: "Load global commands; pass vkGetInstanceProcAddr and a null handle.",
        DISPATCH_INSTANCE: "Load instance commands; pass vkGetInstanceProcAddr and the instance.",
        DISPATCH_DEVICE: "Load device commands; pass vkGetDeviceProcAddr and the device.",
    }
    for level, table, loader in LEVEL_TABLES:
        lines.extend(
            _table_lines(registry, table, loader, tuple(levels[level]), level_docs[level])
        )
        symbols.add(table, MODULE_LOADER)
        symbols.add(loader, MODULE_LOADER)
        public.extend((table, loader))
        level_tables[level] = table

    lines.extend(["", "", "COMMAND_TABLES = {"])
    lines.extend(
        f'    "{group_name}": ({group_tables[group_name]}, {loader_name(group_name)}),'
        for group_name in filtered.groups
    )
    lines.append("}")
    symbols.add("COMMAND_TABLES", MODULE_LOADER)
    public.append("COMMAND_TABLES")

    if GET_INSTANCE_PROC_ADDR in filtered.commands:
        lines.extend(
            [
                "",
                "",
                "def bind_get_instance_proc_addr(library):",
                '    """Return vkGetInstanceProcAddr exported by a loaded ctypes library."""',
                f'    return {prototype_name(GET_INSTANCE_PROC_ADDR)}(("{GET_INSTANCE_PROC_ADDR}", library))',
            ]
        )
        symbols.add("bind_get_instance_proc_addr", MODULE_LOADER)
        public.append("bind_get_instance_proc_addr")
    lines.append("")
    return lines, group_tables, level_tables, tuple(public)


# ===--- Verification ---=== #


def check_type_sequence(filtered: FilteredRegistry, sequence: tuple[str, ...]) -> None:
    """Fail unless every emitted type follows the emitted types it needs.

    Raises:
        EmissionFailure: If a type precedes one of its ordering dependencies.
    """
    position = {name: index for index, name in enumerate(sequence)}
    for name in sequence:
        for dep in filtered.graph.edges.get(name, ()):
            if dep in position and position[dep] >= position[name]:
                raise EmissionFailure(name, f"emitted before its dependency {dep}")


# ===--- Entry point ---=== #


def _module_spec(stem: str, body: list[str], exports: list[str]) -> ModuleSpec:
    external = (ExternalImport("ctypes"),)
    if stem == MODULE_BASE_TYPES:
        external += (ExternalImport("sys"),)
    siblings = tuple(
        SiblingImport(earlier, ("*",)) for earlier in MODULE_ORDER[: MODULE_ORDER.index(stem)]
    )
    content = _collapse_blank_lines(_exports_block(exports) + [""] + body)
    while content and not content[-1]:
        content.pop()
    return ModuleSpec(
        filename=f"{stem}.py",
        external_imports=external,
        sibling_imports=siblings,
        content_lines=tuple(content),
    )


def emit_bindings(filtered: FilteredRegistry) -> GeneratedBindings:
    """Render the filtered registry as a ctypes binding package.

    Args:
        filtered: Filter Stage output; its types are already in topological
            order.

    Returns:
        GeneratedBindings with one ModuleSpec per generated module, the
        __init__ manifest, and the emitted type sequence.

    Raises:
        EmissionFailure: A name cannot be emitted as a Python identifier, two
            emitted names collide, a by-value platform type has no known
            layout, or the emitted order violates a type dependency.
    """
    registry = filtered.registry
    by_module: dict[str, list[str]] = {stem: [] for stem in MODULE_ORDER}
    for name in filtered.types:
        module = module_for(registry, registry.types[name])
        if module is not None:
            by_module[module].append(name)

    type_sequence = tuple(
        name
        for stem in (MODULE_BASE_TYPES, MODULE_ENUMS, MODULE_HANDLES, MODULE_TYPES)
        for name in by_module[stem]
    )
    check_type_sequence(filtered, type_sequence)

    enum_values, other_constants = partition_constants(filtered)
    symbols = _SymbolTable()
    bodies = {
        MODULE_BASE_TYPES: _base_types_body(
            filtered, by_module[MODULE_BASE_TYPES], other_constants, symbols
        ),
        MODULE_ENUMS: _enums_body(filtered, by_module[MODULE_ENUMS], enum_values, symbols),
        MODULE_HANDLES: _handles_body(filtered, by_module[MODULE_HANDLES], symbols),
        MODULE_TYPES: _types_body(filtered, by_module[MODULE_TYPES], symbols),
        MODULE_COMMANDS: _commands_body(filtered, symbols),
    }
    loader_lines, group_tables, level_tables, loader_public = _loader_body(filtered, symbols)
    bodies[MODULE_LOADER] = loader_lines

    modules = tuple(
        _module_spec(stem, bodies[stem], symbols.exports[stem]) for stem in MODULE_ORDER
    )
    re_exports = tuple(
        InitReExport(stem, wildcard=True, names=()) for stem in MODULE_ORDER[:-1]
    ) + (InitReExport(MODULE_LOADER, wildcard=False, names=loader_public),)
    return GeneratedBindings(
        modules=modules,
        init=InitModuleSpec(re_exports=re_exports),
        type_sequence=type_sequence,
        group_tables=group_tables,
        level_tables=level_tables,
    )
