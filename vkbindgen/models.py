from dataclasses import dataclass, field

from .config import VulkanVersion

# ===--- Type kinds ---=== #

KIND_PRIMITIVE = "primitive"
KIND_BASETYPE = "basetype"
KIND_EXTERNAL = "external"
KIND_BITMASK = "bitmask"
KIND_ENUM = "enum"
KIND_HANDLE = "handle"
KIND_STRUCT = "struct"
KIND_UNION = "union"
KIND_FUNCPOINTER = "funcpointer"
KIND_ALIAS = "alias"
KIND_DEFINE = "define"
KIND_INCLUDE = "include"

COMPOSITE_KINDS = frozenset({KIND_STRUCT, KIND_UNION})
# Kinds that get a generated declaration; primitives map straight to ctypes.
EMITTED_KINDS = frozenset(
    {
        KIND_BASETYPE,
        KIND_EXTERNAL,
        KIND_BITMASK,
        KIND_ENUM,
        KIND_HANDLE,
        KIND_STRUCT,
        KIND_UNION,
        KIND_FUNCPOINTER,
        KIND_ALIAS,
    }
)

GROUP_FEATURE = "feature"
GROUP_EXTENSION = "extension"


# ===--- Registry entities ---=== #


@dataclass(frozen=True)
class Member:
    """One struct/union member, command parameter or return slot.

    Attributes:
        name: Field or parameter name. Empty for return slots and typedef
            underlyings.
        type_name: Referenced TypeDef name (registry type or C primitive).
        pointer_depth: Number of `*` after the type.
        is_const: True when the declaration starts with `const`.
        array_dims: Array dimensions outermost first. Each is an integer
            literal or the name of an API constant.
        bitwidth: Bitfield width, or None for ordinary members.
    """

    name: str
    type_name: str
    pointer_depth: int = 0
    is_const: bool = False
    array_dims: tuple[str, ...] = ()
    bitwidth: int | None = None

    @property
    def is_pointer(self) -> bool:
        return self.pointer_depth > 0


@dataclass(frozen=True)
class TypeDef:
    """A named type from the registry.

    Only the attributes relevant to `kind` are populated:
      - basetype: `underlying` (typedef target).
      - bitmask: `underlying` (VkFlags or VkFlags64) and `bits` (FlagBits enum).
      - enum: `bitwidth` and `is_bitmask`.
      - handle: `dispatchable` and `parents`.
      - struct/union: `members`.
      - funcpointer: `returns` and `members` (parameters).
      - alias: `alias` (target type name).
      - external: `header` (required platform header, if any).
    """

    name: str
    kind: str
    index: int
    members: tuple[Member, ...] = ()
    underlying: Member | None = None
    bits: str | None = None
    bitwidth: int = 32
    is_bitmask: bool = False
    dispatchable: bool = False
    parents: tuple[str, ...] = ()
    returns: Member | None = None
    alias: str | None = None
    header: str | None = None


@dataclass(frozen=True)
class Command:
    name: str
    index: int
    returns: Member
    params: tuple[Member, ...] = ()
    alias: str | None = None


@dataclass(frozen=True)
class Constant:
    """A named literal: API constant, enum value or extension constant.

    Attributes:
        value: int, float or bytes literal. None for pure aliases.
        type_name: The enum that owns the value, or the declared C type of an
            API constant. None for untyped extension constants.
    """

    name: str
    index: int
    value: int | float | bytes | None
    type_name: str | None = None
    alias: str | None = None


@dataclass(frozen=True)
class Requirement:
    """One `<require>` block: what it introduces and under which condition."""

    depends: str | None
    types: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    constants: tuple[str, ...] = ()


@dataclass(frozen=True)
class FeatureGroup:
    name: str
    kind: str
    index: int
    number: str | None = None
    ext_type: str | None = None
    platform: str | None = None
    author: str | None = None
    protect: str | None = None
    depends: str | None = None
    promoted_to: str | None = None
    requirements: tuple[Requirement, ...] = ()

    @property
    def version(self) -> VulkanVersion | None:
        if self.kind != GROUP_FEATURE or not self.number:
            return None
        major_s, _, minor_s = self.number.partition(".")
        return VulkanVersion(int(major_s), int(minor_s or "0"))

    @property
    def commands(self) -> tuple[str, ...]:
        return _ordered_unique(r.commands for r in self.requirements)

    @property
    def types(self) -> tuple[str, ...]:
        return _ordered_unique(r.types for r in self.requirements)

    @property
    def constants(self) -> tuple[str, ...]:
        return _ordered_unique(r.constants for r in self.requirements)


@dataclass(frozen=True)
class Platform:
    name: str
    protect: str | None = None


@dataclass(frozen=True)
class Registry:
    """The complete unfiltered entity set of one registry document.

    Every mapping iterates in declaration order.
    """

    api: str
    version: str
    types: dict[str, TypeDef]
    commands: dict[str, Command]
    constants: dict[str, Constant]
    groups: dict[str, FeatureGroup]
    platforms: dict[str, Platform] = field(default_factory=dict)


def _ordered_unique(chunks) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for chunk in chunks:
        for name in chunk:
            if name not in seen:
                seen.add(name)
                ordered.append(name)
    return tuple(ordered)


# ===--- Stage boundaries ---=== #


@dataclass(frozen=True)
class DependencyGraph:
    """Type dependency graph built once by the resolver.

    Attributes:
        nodes: Every TypeDef name, in declaration order.
        edges: Dependent -> ordering dependencies (must be declared first).
        references: Dependent -> every referenced type, pointer references
            included. Used for reachability.
        constant_refs: Type -> API constants used as array sizes.
        command_refs: Command -> every type its signature references.
    """

    nodes: tuple[str, ...]
    edges: dict[str, tuple[str, ...]]
    references: dict[str, tuple[str, ...]]
    constant_refs: dict[str, tuple[str, ...]]
    command_refs: dict[str, tuple[str, ...]]

    def dependents(self) -> dict[str, tuple[str, ...]]:
        reverse: dict[str, list[str]] = {name: [] for name in self.nodes}
        for node in self.nodes:
            for dep in self.edges.get(node, ()):
                reverse[dep].append(node)
        return {name: tuple(deps) for name, deps in reverse.items()}

    def in_degrees(self) -> dict[str, int]:
        return {name: len(self.edges.get(name, ())) for name in self.nodes}


@dataclass(frozen=True)
class Membership:
    """Entity membership in one FeatureGroup, with its require condition."""

    group: str
    depends: str | None = None


@dataclass(frozen=True)
class ResolvedRegistry:
    registry: Registry
    graph: DependencyGraph
    type_order: tuple[str, ...]
    command_groups: dict[str, tuple[Membership, ...]]
    type_groups: dict[str, tuple[Membership, ...]]
    constant_groups: dict[str, tuple[Membership, ...]]


@dataclass(frozen=True)
class FilteredRegistry:
    """Entities surviving the Filter Stage, ready for emission.

    Attributes:
        types: Kept type names in topological order.
        commands: Kept command names in declaration order.
        constants: Kept constant names in declaration order.
        groups: Kept FeatureGroup names in declaration order.
        group_commands: Kept group -> its kept commands, table order.
        excluded_groups: Groups removed by platform or author tags.
        command_platforms: Kept command -> platform tags gating it, for
            platform-specific commands only.
    """

    registry: Registry
    graph: DependencyGraph
    types: tuple[str, ...]
    commands: tuple[str, ...]
    constants: tuple[str, ...]
    groups: tuple[str, ...]
    group_commands: dict[str, tuple[str, ...]]
    excluded_groups: frozenset[str] = frozenset()
    command_platforms: dict[str, frozenset[str]] = field(default_factory=dict)

    def command_groups(self) -> dict[str, tuple[str, ...]]:
        result: dict[str, list[str]] = {name: [] for name in self.commands}
        for group in self.groups:
            for command in self.group_commands.get(group, ()):
                result[command].append(group)
        return {name: tuple(groups) for name, groups in result.items()}
