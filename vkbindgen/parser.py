"""Registry Parser: vk.xml document -> unfiltered entity set.

The parser never filters beyond the selected API variant. Everything it
returns is validated: every type, constant and command reference resolves,
or `MalformedRegistry` names the offending element and where it lives.
"""

import dataclasses
import re
import xml.etree.ElementTree as ET
from pathlib import Path

from .config import VulkanVersion
from .errors import MalformedRegistry
from .models import (
    GROUP_EXTENSION,
    GROUP_FEATURE,
    KIND_ALIAS,
    KIND_BASETYPE,
    KIND_BITMASK,
    KIND_DEFINE,
    KIND_ENUM,
    KIND_EXTERNAL,
    KIND_FUNCPOINTER,
    KIND_HANDLE,
    KIND_INCLUDE,
    KIND_PRIMITIVE,
    KIND_STRUCT,
    KIND_UNION,
    Command,
    Constant,
    FeatureGroup,
    Member,
    Platform,
    Registry,
    Requirement,
    TypeDef,
)

KNOWN_TOP_LEVEL_ELEMENTS = frozenset(
    {
        "comment",
        "platforms",
        "tags",
        "types",
        "enums",
        "commands",
        "feature",
        "extensions",
        "formats",
        "spirvextensions",
        "spirvcapabilities",
        "sync",
        "videocodecs",
    }
)

C_PRIMITIVES: tuple[str, ...] = (
    "void",
    "char",
    "float",
    "double",
    "int8_t",
    "uint8_t",
    "int16_t",
    "uint16_t",
    "int32_t",
    "uint32_t",
    "int64_t",
    "uint64_t",
    "size_t",
    "int",
)

ENUM_BASE_VALUE = 1000000000
ENUM_RANGE_SIZE = 1000

_C_INT_RE = re.compile(
    r"^(?P<op>[~-]?)\s*(?P<digits>0[xX][0-9A-Fa-f]+|\d+)(?P<suffix>[uUlL]*)$"
)
_C_FLOAT_RE = re.compile(r"^-?\d+\.\d*(?:[eE][-+]?\d+)?[fF]?$")
_ARRAY_DIM_RE = re.compile(r"\[\s*([A-Za-z0-9_]+)\s*\]")
_BITFIELD_RE = re.compile(r":\s*(\d+)")
_LEGACY_FUNCPOINTER_RE = re.compile(
    r"typedef\s+(?P<ret>.+?)\s*\(\s*VKAPI_PTR\s*\*\s*(?P<name>\w+)\s*\)\s*"
    r"\((?P<params>.*)\)\s*;",
    re.DOTALL,
)


# ===--- Small helpers ---=== #


def _api_matches(value: str | None, api: str) -> bool:
    """Return True when an `api`/`supported` attribute admits `api`.

    A missing attribute admits every API.
    """
    if value is None:
        return True
    return any(token.strip() == api for token in value.split(","))


def _location(parent: str, tag: str, position: int, name: str | None = None) -> str:
    path = f"{parent}/{tag}[{position}]"
    if name:
        path += f"[@name='{name}']"
    return path


def _type_name(t: ET.Element) -> str | None:
    name = t.get("name")
    if name:
        return name
    name_el = t.find("name")
    if name_el is not None and name_el.text:
        return name_el.text.strip()
    proto_name = t.find("proto/name")
    if proto_name is not None and proto_name.text:
        return proto_name.text.strip()
    return None


def parse_c_literal(raw: str, element: str, location: str) -> int | float | bytes:
    """Evaluate a registry literal such as `256`, `(~0ULL)` or `1000.0F`.

    Quoted strings become bytes so the generated bindings can hand them to
    `ctypes.c_char_p` arguments unchanged.
    """
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1].encode("utf-8")
    while text.startswith("(") and text.endswith(")"):
        text = text[1:-1].strip()

    match = _C_INT_RE.match(text)
    if match:
        digits = match.group("digits")
        value = int(digits, 16) if digits[:2].lower() == "0x" else int(digits)
        op = match.group("op")
        if op == "~":
            width = 64 if match.group("suffix").upper().count("L") >= 2 else 32
            return ~value & ((1 << width) - 1)
        if op == "-":
            return -value
        return value

    if _C_FLOAT_RE.match(text):
        return float(text.rstrip("fF"))

    raise MalformedRegistry(element, location, f"unparsable literal {raw!r}")


def _parse_c_declaration(decl: str, element: str, location: str) -> Member:
    """Parse a plain C declaration like `const char* pName` (legacy funcpointers)."""
    text = decl.strip()
    is_const = text.startswith("const")
    pointer_depth = text.count("*")
    words = [w for w in text.replace("*", " ").split() if w not in ("const", "struct")]
    if not words:
        raise MalformedRegistry(element, location, f"empty declaration {decl!r}")
    if len(words) == 1:
        return Member("", words[0], pointer_depth, is_const)
    return Member(words[-1], words[-2], pointer_depth, is_const)


# ===--- Members and parameters ---=== #


def parse_member(m: ET.Element, owner: str, location: str) -> Member:
    """Parse a `<member>` or `<param>` element.

    Pointer depth comes from the text between `<type>` and `<name>`. Array
    dimensions and bitfield widths come from the text after `<name>`,
    including `<enum>` children naming API constants.
    """
    type_el = m.find("type")
    name_el = m.find("name")
    if type_el is None or not type_el.text or name_el is None or not name_el.text:
        raise MalformedRegistry(
            f"member of {owner}", location, "member requires <type> and <name>"
        )

    children = list(m)
    suffix_parts = [name_el.tail or ""]
    for child in children[children.index(name_el) + 1 :]:
        if child.tag == "enum":
            suffix_parts.append(child.text or "")
        suffix_parts.append(child.tail or "")
    suffix = "".join(suffix_parts)

    array_dims = tuple(_ARRAY_DIM_RE.findall(suffix))
    bitwidth = None
    if not array_dims:
        bit_match = _BITFIELD_RE.search(suffix)
        if bit_match:
            bitwidth = int(bit_match.group(1))

    return Member(
        name=name_el.text.strip(),
        type_name=type_el.text.strip(),
        pointer_depth=(type_el.tail or "").count("*"),
        is_const="const" in (m.text or ""),
        array_dims=array_dims,
        bitwidth=bitwidth,
    )


def _parse_members(t: ET.Element, name: str, location: str, api: str) -> tuple[Member, ...]:
    members: list[Member] = []
    seen: set[str] = set()
    for position, m in enumerate(t.findall("member"), 1):
        if not _api_matches(m.get("api"), api):
            continue
        member = parse_member(m, name, _location(location, "member", position))
        if member.name in seen:
            raise MalformedRegistry(
                f"member '{member.name}' of {name}",
                _location(location, "member", position),
                "duplicate member",
            )
        seen.add(member.name)
        members.append(member)
    return tuple(members)


# ===--- Types ---=== #


def _parse_basetype(t: ET.Element, name: str, index: int) -> TypeDef:
    type_el = t.find("type")
    if type_el is not None and type_el.text:
        underlying = Member(
            "", type_el.text.strip(), pointer_depth=(type_el.tail or "").count("*")
        )
        return TypeDef(name, KIND_BASETYPE, index, underlying=underlying)
    if "*" in "".join(t.itertext()):
        return TypeDef(
            name, KIND_BASETYPE, index, underlying=Member("", "void", pointer_depth=1)
        )
    return TypeDef(name, KIND_EXTERNAL, index)


def _parse_funcpointer(t: ET.Element, name: str, index: int, location: str, api: str) -> TypeDef:
    proto = t.find("proto")
    if proto is not None:
        type_el = proto.find("type")
        ret_name = type_el.text.strip() if type_el is not None and type_el.text else "void"
        tail = type_el.tail if type_el is not None and type_el.tail else ""
        returns = Member("", ret_name, pointer_depth=tail.split("(")[0].count("*"))
        params: list[Member] = []
        for position, p in enumerate(t.findall("param"), 1):
            if _api_matches(p.get("api"), api):
                params.append(parse_member(p, name, _location(location, "param", position)))
        return TypeDef(name, KIND_FUNCPOINTER, index, members=tuple(params), returns=returns)

    text = "".join(t.itertext())
    match = _LEGACY_FUNCPOINTER_RE.search(text)
    if match is None:
        raise MalformedRegistry(name, location, "unrecognized function pointer declaration")
    returns = _parse_c_declaration(match.group("ret"), name, location)
    raw_params = match.group("params").strip()
    params = []
    if raw_params and raw_params != "void":
        for decl in raw_params.split(","):
            params.append(_parse_c_declaration(decl, name, location))
    return TypeDef(name, KIND_FUNCPOINTER, index, members=tuple(params), returns=returns)


def parse_type(t: ET.Element, index: int, location: str, api: str) -> TypeDef:
    name = _type_name(t)
    if not name:
        raise MalformedRegistry("type", location, "type requires a name")
    location = f"{location}[@name='{name}']"

    alias = t.get("alias")
    if alias:
        return TypeDef(name, KIND_ALIAS, index, alias=alias)

    category = t.get("category")
    if category is None:
        kind = KIND_PRIMITIVE if name in C_PRIMITIVES else KIND_EXTERNAL
        return TypeDef(name, kind, index, header=t.get("requires"))
    if category == "include":
        return TypeDef(name, KIND_INCLUDE, index)
    if category == "define":
        return TypeDef(name, KIND_DEFINE, index)
    if category == "basetype":
        return _parse_basetype(t, name, index)
    if category == "bitmask":
        type_el = t.find("type")
        if type_el is None or not type_el.text:
            raise MalformedRegistry(name, location, "bitmask requires an underlying <type>")
        return TypeDef(
            name,
            KIND_BITMASK,
            index,
            underlying=Member("", type_el.text.strip()),
            bits=t.get("requires") or t.get("bitvalues"),
        )
    if category == "enum":
        return TypeDef(name, KIND_ENUM, index)
    if category == "handle":
        type_el = t.find("type")
        macro = type_el.text.strip() if type_el is not None and type_el.text else ""
        if macro not in ("VK_DEFINE_HANDLE", "VK_DEFINE_NON_DISPATCHABLE_HANDLE"):
            raise MalformedRegistry(name, location, f"unknown handle macro {macro!r}")
        parents = tuple(p.strip() for p in t.get("parent", "").split(",") if p.strip())
        return TypeDef(
            name,
            KIND_HANDLE,
            index,
            dispatchable=macro == "VK_DEFINE_HANDLE",
            parents=parents,
        )
    if category in ("struct", "union"):
        kind = KIND_STRUCT if category == "struct" else KIND_UNION
        members = _parse_members(t, name, location, api)
        if not members:
            raise MalformedRegistry(name, location, f"{category} has no members")
        return TypeDef(name, kind, index, members=members)
    if category == "funcpointer":
        return _parse_funcpointer(t, name, index, location, api)
    raise MalformedRegistry(name, location, f"unknown type category {category!r}")


def parse_types(
    root: ET.Element, api: str, locations: dict[str, str]
) -> dict[str, TypeDef]:
    types: dict[str, TypeDef] = {
        name: TypeDef(name, KIND_PRIMITIVE, index) for index, name in enumerate(C_PRIMITIVES)
    }
    declared: set[str] = set()
    index = len(C_PRIMITIVES)
    for position, t in enumerate(root.findall("types/type"), 1):
        if not _api_matches(t.get("api"), api):
            continue
        location = _location("registry/types", "type", position)
        typedef = parse_type(t, index, location, api)
        index += 1
        if typedef.name in declared:
            raise MalformedRegistry(typedef.name, location, "duplicate type definition")
        declared.add(typedef.name)
        if typedef.name in types and typedef.kind == KIND_PRIMITIVE:
            typedef = dataclasses.replace(typedef, index=types[typedef.name].index)
        types[typedef.name] = typedef
        locations[typedef.name] = f"{location}[@name='{typedef.name}']"
    return types


# ===--- Constants ---=== #


def _enum_value(
    val: ET.Element,
    default_extnumber: str | None,
    name: str,
    location: str,
) -> int | float | bytes | None:
    value = val.get("value")
    if value is not None:
        return parse_c_literal(value, name, location)
    bitpos = val.get("bitpos")
    if bitpos is not None:
        return 1 << int(bitpos)
    offset = val.get("offset")
    if offset is not None:
        extnumber = val.get("extnumber", default_extnumber)
        if extnumber is None:
            raise MalformedRegistry(name, location, "offset enum without extnumber")
        result = ENUM_BASE_VALUE + (int(extnumber) - 1) * ENUM_RANGE_SIZE + int(offset)
        return -result if val.get("dir") == "-" else result
    return None


def parse_enum_blocks(
    root: ET.Element,
    api: str,
    types: dict[str, TypeDef],
    constants: dict[str, Constant],
    locations: dict[str, str],
) -> None:
    """Read every `<enums>` block into `constants`, updating enum widths."""
    for block_pos, block in enumerate(root.findall("enums"), 1):
        block_name = block.get("name")
        block_loc = _location("registry", "enums", block_pos, block_name)
        if not block_name:
            raise MalformedRegistry("enums", block_loc, "enums block requires a name")

        block_type = block.get("type")
        owner: str | None = None
        if block_type in ("enum", "bitmask"):
            enum_def = types.get(block_name)
            if enum_def is None or enum_def.kind != KIND_ENUM:
                raise MalformedRegistry(
                    block_name, block_loc, "enums block does not name an enum type"
                )
            types[block_name] = dataclasses.replace(
                enum_def,
                bitwidth=int(block.get("bitwidth", "32")),
                is_bitmask=block_type == "bitmask",
            )
            owner = block_name
        elif block_type not in (None, "constants"):
            raise MalformedRegistry(
                block_name, block_loc, f"unknown enums block type {block_type!r}"
            )

        for val_pos, val in enumerate(block.findall("enum"), 1):
            if not _api_matches(val.get("api"), api):
                continue
            name = val.get("name")
            location = _location(block_loc, "enum", val_pos, name)
            if not name:
                raise MalformedRegistry(f"enum in {block_name}", location, "enum requires a name")
            if name in constants:
                raise MalformedRegistry(name, location, "duplicate enum definition")
            alias = val.get("alias")
            if alias:
                value = None
            else:
                value = _enum_value(val, None, name, location)
                if value is None:
                    raise MalformedRegistry(name, location, "enum has no value")
            constants[name] = Constant(
                name,
                len(constants),
                value,
                type_name=owner if owner else val.get("type"),
                alias=alias,
            )
            locations[name] = location


# ===--- Commands ---=== #


def parse_commands(
    root: ET.Element, api: str, locations: dict[str, str]
) -> dict[str, Command]:
    commands: dict[str, Command] = {}
    for position, cmd in enumerate(root.findall("commands/command"), 1):
        if not _api_matches(cmd.get("api"), api):
            continue
        location = _location("registry/commands", "command", position)
        alias = cmd.get("alias")
        if alias:
            name = cmd.get("name")
            if not name:
                raise MalformedRegistry("command", location, "alias command requires a name")
            command = Command(name, len(commands), Member("", "void"), alias=alias)
        else:
            proto = cmd.find("proto")
            name_el = proto.find("name") if proto is not None else None
            if proto is None or name_el is None or not name_el.text:
                raise MalformedRegistry("command", location, "command requires <proto><name>")
            name = name_el.text.strip()
            type_el = proto.find("type")
            returns = Member(
                "",
                type_el.text.strip() if type_el is not None and type_el.text else "void",
                pointer_depth=(type_el.tail or "").count("*") if type_el is not None else 0,
            )
            params = []
            for param_pos, p in enumerate(cmd.findall("param"), 1):
                if _api_matches(p.get("api"), api):
                    params.append(
                        parse_member(p, name, _location(location, "param", param_pos))
                    )
            command = Command(name, len(commands), returns, tuple(params))

        location = f"{location}[@name='{command.name}']"
        if command.name in commands:
            raise MalformedRegistry(command.name, location, "duplicate command definition")
        commands[command.name] = command
        locations[command.name] = location
    return commands


def _resolve_command_aliases(
    commands: dict[str, Command], locations: dict[str, str]
) -> None:
    """Give every alias command its target's signature."""
    for name, command in list(commands.items()):
        if command.alias is None:
            continue
        target = command
        visited = {name}
        while target.alias is not None:
            next_target = commands.get(target.alias)
            if next_target is None or next_target.name in visited:
                raise MalformedRegistry(
                    name, locations[name], f"unresolvable command alias {command.alias!r}"
                )
            visited.add(next_target.name)
            target = next_target
        commands[name] = dataclasses.replace(
            command, returns=target.returns, params=target.params
        )


# ===--- Feature groups ---=== #


def _requirement_depends(req: ET.Element) -> str | None:
    depends = req.get("depends")
    if depends:
        return depends
    legacy = [req.get(attr) for attr in ("feature", "extension") if req.get(attr)]
    return "+".join(legacy) if legacy else None


def _extension_depends(ext: ET.Element) -> str | None:
    depends = ext.get("depends")
    if depends:
        return depends
    parts: list[str] = []
    requires = ext.get("requires")
    if requires:
        parts.extend(p.strip() for p in requires.split(",") if p.strip())
    requires_core = ext.get("requiresCore")
    if requires_core:
        major, _, minor = requires_core.partition(".")
        parts.insert(0, f"VK_VERSION_{major}_{minor or '0'}")
    return "+".join(parts) if parts else None


def parse_requirements(
    group_el: ET.Element,
    group_name: str,
    group_loc: str,
    api: str,
    extnumber: str | None,
    constants: dict[str, Constant],
    locations: dict[str, str],
) -> tuple[Requirement, ...]:
    requirements: list[Requirement] = []
    for req_pos, req in enumerate(group_el.findall("require"), 1):
        if not _api_matches(req.get("api"), api):
            continue
        req_loc = _location(group_loc, "require", req_pos)
        types: list[str] = []
        commands: list[str] = []
        names: list[str] = []
        for child_pos, child in enumerate(req, 1):
            if not _api_matches(child.get("api"), api):
                continue
            if child.tag not in ("type", "command", "enum"):
                continue
            name = child.get("name")
            child_loc = _location(req_loc, child.tag, child_pos, name)
            if not name:
                raise MalformedRegistry(
                    f"{child.tag} in {group_name}", child_loc, f"{child.tag} requires a name"
                )
            if child.tag == "type":
                types.append(name)
                continue
            if child.tag == "command":
                commands.append(name)
                continue

            names.append(name)
            extends = child.get("extends")
            alias = child.get("alias")
            value = None if alias else _enum_value(child, extnumber, name, child_loc)
            if alias is None and value is None:
                continue
            if name in constants:
                continue
            constants[name] = Constant(
                name,
                len(constants),
                value,
                type_name=extends if extends else child.get("type"),
                alias=alias,
            )
            locations[name] = child_loc

        requirements.append(
            Requirement(
                depends=_requirement_depends(req),
                types=tuple(types),
                commands=tuple(commands),
                constants=tuple(names),
            )
        )
    return tuple(requirements)


def parse_feature_groups(
    root: ET.Element,
    api: str,
    constants: dict[str, Constant],
    locations: dict[str, str],
) -> dict[str, FeatureGroup]:
    groups: dict[str, FeatureGroup] = {}

    for position, feat in enumerate(root.findall("feature"), 1):
        if not _api_matches(feat.get("api"), api):
            continue
        name = feat.get("name")
        location = _location("registry", "feature", position, name)
        if not name:
            raise MalformedRegistry("feature", location, "feature requires a name")
        if name in groups:
            raise MalformedRegistry(name, location, "duplicate feature")
        number = feat.get("number")
        if number is not None and not re.match(r"^\d+\.\d+$", number):
            raise MalformedRegistry(name, location, f"invalid feature number {number!r}")
        groups[name] = FeatureGroup(
            name=name,
            kind=GROUP_FEATURE,
            index=len(groups),
            number=number,
            depends=feat.get("depends"),
            requirements=parse_requirements(
                feat, name, location, api, None, constants, locations
            ),
        )
        locations[name] = location

    for position, ext in enumerate(root.findall("extensions/extension"), 1):
        if not _api_matches(ext.get("supported", ""), api):
            continue
        name = ext.get("name")
        location = _location("registry/extensions", "extension", position, name)
        if not name:
            raise MalformedRegistry("extension", location, "extension requires a name")
        if name in groups:
            raise MalformedRegistry(name, location, "duplicate extension")
        number = ext.get("number")
        groups[name] = FeatureGroup(
            name=name,
            kind=GROUP_EXTENSION,
            index=len(groups),
            number=number,
            ext_type=ext.get("type"),
            platform=ext.get("platform"),
            author=ext.get("author"),
            protect=ext.get("protect"),
            depends=_extension_depends(ext),
            promoted_to=ext.get("promotedto"),
            requirements=parse_requirements(
                ext, name, location, api, number, constants, locations
            ),
        )
        locations[name] = location

    return groups


def parse_platforms(root: ET.Element) -> dict[str, Platform]:
    platforms: dict[str, Platform] = {}
    for position, p in enumerate(root.findall("platforms/platform"), 1):
        name = p.get("name")
        if not name:
            raise MalformedRegistry(
                "platform",
                _location("registry/platforms", "platform", position),
                "platform requires a name",
            )
        platforms[name] = Platform(name, p.get("protect"))
    return platforms


# ===--- Reference validation ---=== #


def _check_type_ref(
    type_name: str, types: dict[str, TypeDef], element: str, location: str
) -> None:
    if type_name not in types:
        raise MalformedRegistry(element, location, f"unresolvable type reference {type_name!r}")


def validate_references(
    types: dict[str, TypeDef],
    commands: dict[str, Command],
    constants: dict[str, Constant],
    groups: dict[str, FeatureGroup],
    platforms: dict[str, Platform],
    locations: dict[str, str],
) -> None:
    for name, typedef in types.items():
        location = locations.get(name, "registry/types")
        members = list(typedef.members)
        for slot in (typedef.underlying, typedef.returns):
            if slot is not None:
                members.append(slot)
        for member in members:
            element = f"member '{member.name}' of {name}" if member.name else name
            _check_type_ref(member.type_name, types, element, location)
            for dim in member.array_dims:
                if not dim.isdigit() and dim not in constants:
                    raise MalformedRegistry(
                        element, location, f"unresolvable array size {dim!r}"
                    )
        if typedef.alias is not None:
            _check_type_ref(typedef.alias, types, name, location)
        if typedef.bits is not None:
            _check_type_ref(typedef.bits, types, name, location)

    for name, command in commands.items():
        location = locations[name]
        _check_type_ref(command.returns.type_name, types, f"return of {name}", location)
        for param in command.params:
            _check_type_ref(param.type_name, types, f"param '{param.name}' of {name}", location)

    for name, constant in constants.items():
        location = locations.get(name, "registry/enums")
        if constant.alias is not None and constant.alias not in constants:
            raise MalformedRegistry(name, location, f"unresolvable enum alias {constant.alias!r}")
        if constant.type_name is not None:
            _check_type_ref(constant.type_name, types, name, location)

    for name, group in groups.items():
        location = locations[name]
        if group.platform is not None and platforms and group.platform not in platforms:
            raise MalformedRegistry(name, location, f"unknown platform {group.platform!r}")
        for requirement in group.requirements:
            for type_name in requirement.types:
                _check_type_ref(type_name, types, name, location)
            for command_name in requirement.commands:
                if command_name not in commands:
                    raise MalformedRegistry(
                        name, location, f"unresolvable command reference {command_name!r}"
                    )
            for constant_name in requirement.constants:
                if constant_name not in constants:
                    raise MalformedRegistry(
                        name, location, f"unresolvable enum reference {constant_name!r}"
                    )


# ===--- Registry metadata ---=== #


def extract_registry_version(root: ET.Element, api: str = "vulkan") -> str:
    """Return the registry version label, e.g. "1.4.343".

    Major.minor is the highest `<feature number>` for `api`; the patch is
    VK_HEADER_VERSION, read from the define type or the API Constants block.
    Returns "<major>.<minor>" when the header version is absent and
    "unknown" when no feature exists.
    """
    best: VulkanVersion | None = None
    for feat in root.findall("feature"):
        if not _api_matches(feat.get("api"), api):
            continue
        match = re.match(r"^(\d+)\.(\d+)$", feat.get("number", ""))
        if match is None:
            continue
        version = VulkanVersion(int(match.group(1)), int(match.group(2)))
        if best is None or version > best:
            best = version

    if best is None:
        return "unknown"

    patch: str | None = None
    for t in root.findall("types/type[@category='define']"):
        if not _api_matches(t.get("api"), api):
            continue
        name_el = t.find("name")
        if name_el is not None and name_el.text == "VK_HEADER_VERSION":
            tail = (name_el.tail or "").strip()
            if tail.isdigit():
                patch = tail
    if patch is None:
        for val in root.findall("enums/enum[@name='VK_HEADER_VERSION']"):
            patch = val.get("value")

    if patch is None:
        return f"{best.major}.{best.minor}"
    return f"{best.major}.{best.minor}.{patch}"


# ===--- Entry points ---=== #


def parse_registry(
    root: ET.Element,
    *,
    api: str = "vulkan",
    registry_version: str | None = None,
) -> Registry:
    """Build the complete, validated entity set from a registry root element.

    Args:
        root: Parsed `<registry>` element.
        api: API variant to read (`vulkan` or `vulkansc`). Elements whose
            `api`/`supported` attribute excludes it are ignored.
        registry_version: Explicit version label for this snapshot. Derived
            from the document when None.

    Returns:
        Registry with types, commands, constants and groups in declaration
        order.

    Raises:
        MalformedRegistry: On any schema violation or unresolvable reference.
    """
    if root.tag != "registry":
        raise MalformedRegistry(root.tag, root.tag, "root element must be <registry>")
    positions: dict[str, int] = {}
    for child in root:
        if not isinstance(child.tag, str):
            continue
        positions[child.tag] = positions.get(child.tag, 0) + 1
        if child.tag not in KNOWN_TOP_LEVEL_ELEMENTS:
            raise MalformedRegistry(
                child.tag,
                _location("registry", child.tag, positions[child.tag]),
                "unknown element",
            )

    locations: dict[str, str] = {}
    platforms = parse_platforms(root)
    types = parse_types(root, api, locations)
    constants: dict[str, Constant] = {}
    parse_enum_blocks(root, api, types, constants, locations)
    commands = parse_commands(root, api, locations)
    _resolve_command_aliases(commands, locations)
    groups = parse_feature_groups(root, api, constants, locations)
    validate_references(types, commands, constants, groups, platforms, locations)

    return Registry(
        api=api,
        version=registry_version or extract_registry_version(root, api),
        types=types,
        commands=commands,
        constants=constants,
        groups=groups,
        platforms=platforms,
    )


def load_registry(
    path: Path,
    *,
    api: str = "vulkan",
    registry_version: str | None = None,
) -> Registry:
    try:
        with open(path, "rb") as handle:
            tree = ET.parse(handle)
    except ET.ParseError as err:
        line, column = err.position
        raise MalformedRegistry(
            "document", f"{path}:{line}:{column}", "XML is not well-formed"
        ) from err
    return parse_registry(tree.getroot(), api=api, registry_version=registry_version)
