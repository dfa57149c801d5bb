"""Dependency Resolver: type ordering and feature-group membership."""

import heapq
import re
from collections.abc import Callable

from .errors import CyclicTypeDependency, MalformedRegistry
from .models import (
    COMPOSITE_KINDS,
    KIND_ALIAS,
    KIND_HANDLE,
    DependencyGraph,
    Membership,
    Member,
    Registry,
    ResolvedRegistry,
    TypeDef,
)

GLOBAL_COMMANDS = {
    "vkCreateInstance",
    "vkEnumerateInstanceLayerProperties",
    "vkEnumerateInstanceExtensionProperties",
    "vkEnumerateInstanceVersion",
    "vkGetInstanceProcAddr",
}
# Loaded through vkGetInstanceProcAddr even though its first parameter is a device.
INSTANCE_COMMANDS = {"vkGetDeviceProcAddr"}

DISPATCH_GLOBAL = "global"
DISPATCH_INSTANCE = "instance"
DISPATCH_DEVICE = "device"

_VK_VERSION_RE = re.compile(r"^VK_VERSION_(\d+)_(\d+)$")
_DEPENDS_TOKEN_RE = re.compile(r"\s*(?:([(),+])|([A-Za-z0-9_:]+))")


# ===--- Alias helpers ---=== #


def resolve_alias(registry: Registry, name: str) -> TypeDef:
    """Follow type aliases to the defining TypeDef."""
    typedef = registry.types[name]
    seen = {name}
    while typedef.kind == KIND_ALIAS and typedef.alias is not None:
        if typedef.alias in seen:
            raise CyclicTypeDependency(sorted(seen) + [typedef.alias])
        seen.add(typedef.alias)
        typedef = registry.types[typedef.alias]
    return typedef


def _is_forward_declarable(registry: Registry, member: Member) -> bool:
    """Pointers to structs and unions only need the forward declaration."""
    return member.is_pointer and resolve_alias(registry, member.type_name).kind in COMPOSITE_KINDS


# ===--- Dependency graph ---=== #


def _typedef_slots(typedef: TypeDef) -> list[Member]:
    slots = list(typedef.members)
    if typedef.underlying is not None:
        slots.append(typedef.underlying)
    if typedef.returns is not None:
        slots.append(typedef.returns)
    return slots


def _unique(names) -> tuple[str, ...]:
    return tuple(dict.fromkeys(names))


def build_dependency_graph(registry: Registry) -> DependencyGraph:
    """Build the type dependency graph for a registry.

    Ordering edges cover every member, parameter and typedef reference
    except pointers to struct/union types, which the generated code
    satisfies with forward declarations. Handles carry no member
    dependencies, so handle self-references never form cycles.

    Args:
        registry: Parsed registry.

    Returns:
        DependencyGraph over every TypeDef, plus command signature references.
    """
    edges: dict[str, tuple[str, ...]] = {}
    references: dict[str, tuple[str, ...]] = {}
    constant_refs: dict[str, tuple[str, ...]] = {}

    for name, typedef in registry.types.items():
        slots = _typedef_slots(typedef)
        ordering = [
            slot.type_name
            for slot in slots
            if not _is_forward_declarable(registry, slot)
        ]
        referenced = [slot.type_name for slot in slots]
        if typedef.alias is not None:
            ordering.append(typedef.alias)
            referenced.append(typedef.alias)
        if typedef.bits is not None:
            referenced.append(typedef.bits)

        edges[name] = _unique(ordering)
        references[name] = _unique(referenced)
        constant_refs[name] = _unique(
            dim for slot in slots for dim in slot.array_dims if not dim.isdigit()
        )

    command_refs = {
        name: _unique([command.returns.type_name] + [p.type_name for p in command.params])
        for name, command in registry.commands.items()
    }

    return DependencyGraph(
        nodes=tuple(registry.types),
        edges=edges,
        references=references,
        constant_refs=constant_refs,
        command_refs=command_refs,
    )


def _find_cycle(
    remaining: set[str], edges: dict[str, tuple[str, ...]], position: dict[str, int]
) -> list[str]:
    # Every remaining node still waits on a remaining dependency, so walking
    # dependencies from any of them must revisit a node.
    node = min(remaining, key=position.__getitem__)
    path: list[str] = []
    on_path: dict[str, int] = {}
    while node not in on_path:
        on_path[node] = len(path)
        path.append(node)
        node = min(
            (dep for dep in edges[node] if dep in remaining),
            key=position.__getitem__,
        )
    return path[on_path[node] :] + [node]


def topological_order(graph: DependencyGraph) -> tuple[str, ...]:
    """Return every TypeDef after all of its dependencies.

    Kahn's algorithm with the ready set ordered by declaration position, so
    unrelated types keep document order and identical graphs always yield
    identical orderings.

    Raises:
        CyclicTypeDependency: With the members of a dependency cycle.
    """
    position = {name: index for index, name in enumerate(graph.nodes)}
    pending = graph.in_degrees()
    dependents = graph.dependents()

    ready = [(position[name], name) for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    order: list[str] = []
    while ready:
        _, node = heapq.heappop(ready)
        order.append(node)
        for dependent in dependents[node]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, (position[dependent], dependent))

    if len(order) != len(graph.nodes):
        remaining = set(graph.nodes) - set(order)
        raise CyclicTypeDependency(_find_cycle(remaining, graph.edges, position))
    return tuple(order)


# ===--- Depends expressions ---=== #


def parse_depends(expression: str):
    """Parse a registry `depends` expression into a nested tuple tree.

    Grammar: `+` is AND, `,` is OR, parentheses group; `+` binds tighter.
    Leaves are extension or version names; inner nodes are
    `("and", children)` / `("or", children)`.

    Raises:
        ValueError: If the expression is empty or malformed.
    """
    tokens: list[str] = []
    pos = 0
    text = expression.strip()
    while pos < len(text):
        match = _DEPENDS_TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ValueError(f"Malformed depends expression: {expression!r}")
        tokens.append(match.group(1) or match.group(2))
        pos = match.end()
    if not tokens:
        raise ValueError("Empty depends expression")

    cursor = 0

    def _peek() -> str | None:
        return tokens[cursor] if cursor < len(tokens) else None

    def _expr():
        nonlocal cursor
        terms = [_term()]
        while _peek() == ",":
            cursor += 1
            terms.append(_term())
        return terms[0] if len(terms) == 1 else ("or", tuple(terms))

    def _term():
        nonlocal cursor
        factors = [_factor()]
        while _peek() == "+":
            cursor += 1
            factors.append(_factor())
        return factors[0] if len(factors) == 1 else ("and", tuple(factors))

    def _factor():
        nonlocal cursor
        token = _peek()
        if token == "(":
            cursor += 1
            node = _expr()
            if _peek() != ")":
                raise ValueError(f"Unbalanced parentheses in {expression!r}")
            cursor += 1
            return node
        if token is None or token in "(),+":
            raise ValueError(f"Malformed depends expression: {expression!r}")
        cursor += 1
        return token

    tree = _expr()
    if cursor != len(tokens):
        raise ValueError(f"Trailing tokens in depends expression: {expression!r}")
    return tree


def _evaluate(node, available: Callable[[str], bool]) -> bool:
    if isinstance(node, str):
        return available(node)
    op, children = node
    if op == "and":
        return all(_evaluate(child, available) for child in children)
    return any(_evaluate(child, available) for child in children)


def evaluate_depends(expression: str | None, available: Callable[[str], bool]) -> bool:
    """Evaluate a `depends` expression; a missing expression is satisfied."""
    if expression is None or not expression.strip():
        return True
    return _evaluate(parse_depends(expression), available)


def depends_names(expression: str | None) -> frozenset[str]:
    """Every name mentioned by a depends expression, versions excluded."""
    if expression is None or not expression.strip():
        return frozenset()

    names: set[str] = set()

    def _walk(node) -> None:
        if isinstance(node, str):
            if not _VK_VERSION_RE.match(node):
                names.add(node)
            return
        for child in node[1]:
            _walk(child)

    _walk(parse_depends(expression))
    return frozenset(names)


def _validate_depends(registry: Registry) -> None:
    for name, group in registry.groups.items():
        expressions = [group.depends] + [r.depends for r in group.requirements]
        for expression in expressions:
            if expression is None:
                continue
            try:
                parse_depends(expression)
            except ValueError as err:
                raise MalformedRegistry(
                    name, f"registry/{group.kind}[@name='{name}']", str(err)
                ) from err


# ===--- Group membership ---=== #


def collect_memberships(
    registry: Registry,
) -> tuple[
    dict[str, tuple[Membership, ...]],
    dict[str, tuple[Membership, ...]],
    dict[str, tuple[Membership, ...]],
]:
    """Map commands, types and constants to the groups that introduce them.

    Groups are visited in declaration order, so each membership tuple is
    ordered by group declaration. Every command appears in the command map,
    with an empty tuple when no group requires it.
    """
    commands: dict[str, list[Membership]] = {name: [] for name in registry.commands}
    types: dict[str, list[Membership]] = {}
    constants: dict[str, list[Membership]] = {}

    def _add(table: dict[str, list[Membership]], name: str, membership: Membership) -> None:
        entries = table.setdefault(name, [])
        if membership not in entries:
            entries.append(membership)

    for group in registry.groups.values():
        for requirement in group.requirements:
            membership = Membership(group.name, requirement.depends)
            for name in requirement.commands:
                _add(commands, name, membership)
            for name in requirement.types:
                _add(types, name, membership)
            for name in requirement.constants:
                _add(constants, name, membership)

    def _freeze(table: dict[str, list[Membership]]) -> dict[str, tuple[Membership, ...]]:
        return {name: tuple(entries) for name, entries in table.items()}

    return _freeze(commands), _freeze(types), _freeze(constants)


def resolve_command_groups(registry: Registry) -> dict[str, tuple[str, ...]]:
    """For every command, the FeatureGroups it belongs to, in declaration order."""
    command_memberships, _, _ = collect_memberships(registry)
    return {
        name: _unique(m.group for m in memberships)
        for name, memberships in command_memberships.items()
    }


def entity_platforms(
    registry: Registry, memberships: tuple[Membership, ...]
) -> frozenset[str]:
    """Platform tags gating an entity introduced by `memberships`.

    An entity introduced by any platform-independent group carries no tag.
    """
    tags: set[str] = set()
    for membership in memberships:
        platform = registry.groups[membership.group].platform
        if platform is None:
            return frozenset()
        tags.add(platform)
    return frozenset(tags)


# ===--- Dispatch levels ---=== #


def is_descendant_handle(registry: Registry, name: str, ancestor: str) -> bool:
    """True when handle `name` is `ancestor` or has it in its parent chain."""
    frontier = [name]
    seen: set[str] = set()
    while frontier:
        current = frontier.pop()
        if current == ancestor:
            return True
        if current in seen or current not in registry.types:
            continue
        seen.add(current)
        typedef = resolve_alias(registry, current)
        frontier.extend(typedef.parents)
    return False


def dispatch_level(registry: Registry, command_name: str) -> str:
    """Classify a command as global, instance or device level.

    The level decides which get-proc-addr entry point loads it: global and
    instance commands go through vkGetInstanceProcAddr, device commands
    through vkGetDeviceProcAddr.
    """
    if command_name in GLOBAL_COMMANDS:
        return DISPATCH_GLOBAL
    if command_name in INSTANCE_COMMANDS:
        return DISPATCH_INSTANCE
    command = registry.commands[command_name]
    if not command.params:
        return DISPATCH_GLOBAL
    first = resolve_alias(registry, command.params[0].type_name)
    if first.kind != KIND_HANDLE or not first.dispatchable:
        return DISPATCH_GLOBAL
    if is_descendant_handle(registry, first.name, "VkDevice"):
        return DISPATCH_DEVICE
    if is_descendant_handle(registry, first.name, "VkInstance"):
        return DISPATCH_INSTANCE
    return DISPATCH_GLOBAL


# ===--- Entry point ---=== #


def resolve(registry: Registry) -> ResolvedRegistry:
    _validate_depends(registry)
    graph = build_dependency_graph(registry)
    order = topological_order(graph)
    command_groups, type_groups, constant_groups = collect_memberships(registry)
    return ResolvedRegistry(
        registry=registry,
        graph=graph,
        type_order=order,
        command_groups=command_groups,
        type_groups=type_groups,
        constant_groups=constant_groups,
    )
