"""Filter Stage: drop out-of-scope groups while keeping references whole.

Two mechanisms remove feature groups:

* Tag exclusion: the group's platform (or author) is not in scope. Anything
  introduced only by excluded groups is *removed*, and a kept entity that
  still needs it raises `DanglingReference`.
* Target selection: versions above the cap and unselected extensions are
  simply not kept. Their entities may still be emitted when something kept
  references them.
"""

from .config import FilterConfig
from .errors import DanglingReference
from .models import (
    GROUP_EXTENSION,
    GROUP_FEATURE,
    KIND_ENUM,
    FeatureGroup,
    FilteredRegistry,
    Membership,
    Registry,
    ResolvedRegistry,
)
from .resolver import depends_names, entity_platforms, evaluate_depends, resolve_alias

# ===--- Group selection ---=== #


def _tag_excluded(group: FeatureGroup, config: FilterConfig) -> bool:
    if group.platform is not None and group.platform not in config.platforms:
        return True
    if (
        config.authors is not None
        and group.author is not None
        and group.author not in config.authors
    ):
        return True
    return False


def exclude_by_tags(registry: Registry, config: FilterConfig) -> frozenset[str]:
    """Return groups excluded by platform/author tags.

    Exclusion cascades: a group whose `depends` expression cannot hold once
    the excluded groups are gone is excluded too. Names the registry does
    not define count as available here.
    """
    excluded = {
        name for name, group in registry.groups.items() if _tag_excluded(group, config)
    }
    changed = True
    while changed:
        changed = False
        for name, group in registry.groups.items():
            if name in excluded or group.depends is None:
                continue
            if not evaluate_depends(group.depends, lambda dep: dep not in excluded):
                excluded.add(name)
                changed = True
    return frozenset(excluded)


def all_extension_names(registry: Registry) -> frozenset[str]:
    return frozenset(
        name for name, group in registry.groups.items() if group.kind == GROUP_EXTENSION
    )


def resolve_extension_deps(
    registry: Registry,
    requested: frozenset[str],
) -> frozenset[str]:
    """Resolve extension dependencies transitively to a closed set.

    Walks each extension's depends expression, expanding the requested set
    until no new names can be added. Every name an expression mentions is
    followed regardless of AND/OR grouping; versions are not. Unknown
    extension names pass through unchanged.

    Args:
        registry: Parsed registry.
        requested: Initial set of requested extension names.

    Returns:
        Frozenset containing requested names plus all transitive dependencies.
    """
    if not requested:
        return frozenset()

    resolved: set[str] = set(requested)
    frontier: set[str] = set(requested)
    while frontier:
        new_frontier: set[str] = set()
        for ext_name in frontier:
            group = registry.groups.get(ext_name)
            if group is None:
                continue
            for dep in depends_names(group.depends):
                if dep not in resolved:
                    resolved.add(dep)
                    new_frontier.add(dep)
        frontier = new_frontier

    return frozenset(resolved)


def select_groups(
    registry: Registry, config: FilterConfig, excluded: frozenset[str]
) -> frozenset[str]:
    """Return the FeatureGroups kept for emission.

    Candidates are core versions up to `config.api_version` and the selected
    extensions closed over their dependencies, minus tag-excluded groups.
    Candidates whose `depends` cannot be met by the other candidates are
    dropped until the set is stable.
    """
    if config.extensions is None:
        selected = all_extension_names(registry)
    else:
        selected = resolve_extension_deps(registry, config.extensions)

    kept: set[str] = set()
    for name, group in registry.groups.items():
        if name in excluded:
            continue
        if group.kind == GROUP_FEATURE:
            version = group.version
            if config.api_version is None or version is None or version <= config.api_version:
                kept.add(name)
        elif name in selected:
            kept.add(name)

    changed = True
    while changed:
        changed = False
        for name in sorted(kept, key=lambda n: registry.groups[n].index):
            group = registry.groups[name]
            if not evaluate_depends(group.depends, kept.__contains__):
                kept.discard(name)
                changed = True
    return frozenset(kept)


# ===--- Membership evaluation ---=== #


def _active(membership: Membership, kept: frozenset[str]) -> bool:
    return membership.group in kept and evaluate_depends(
        membership.depends, kept.__contains__
    )


def _removed(memberships: tuple[Membership, ...], excluded: frozenset[str]) -> bool:
    return bool(memberships) and all(m.group in excluded for m in memberships)


# ===--- Entry point ---=== #


def filter_registry(resolved: ResolvedRegistry, config: FilterConfig) -> FilteredRegistry:
    """Apply platform/author exclusion and target selection.

    Commands and constants survive when any of their groups survives (union
    semantics). Types survive when a kept group introduces them or a kept
    command, type or constant reaches them; unreferenced types from
    unkept groups are pruned.

    Args:
        resolved: Resolver output for the full registry.
        config: Platform, author, version and extension selection.

    Returns:
        FilteredRegistry whose references all resolve to kept entities.

    Raises:
        DanglingReference: A kept entity references a type or constant that
            only excluded groups introduce.
    """
    registry = resolved.registry
    graph = resolved.graph
    excluded = exclude_by_tags(registry, config)
    kept_groups = select_groups(registry, config, excluded)

    removed_types = {
        name
        for name, memberships in resolved.type_groups.items()
        if _removed(memberships, excluded)
    }
    removed_constants = {
        name
        for name, memberships in resolved.constant_groups.items()
        if _removed(memberships, excluded)
    }

    commands = tuple(
        name
        for name, memberships in resolved.command_groups.items()
        if any(_active(m, kept_groups) for m in memberships)
    )

    group_commands: dict[str, list[str]] = {name: [] for name in kept_groups}
    for name in commands:
        for membership in resolved.command_groups[name]:
            if _active(membership, kept_groups) and name not in group_commands[membership.group]:
                group_commands[membership.group].append(name)

    command_platforms: dict[str, frozenset[str]] = {}
    for name in commands:
        active = tuple(m for m in resolved.command_groups[name] if _active(m, kept_groups))
        tags = entity_platforms(registry, active)
        if tags:
            command_platforms[name] = tags

    # Type closure.
    kept_types: set[str] = set()
    needed_constants: set[str] = set()
    stack: list[tuple[str, str]] = []
    for name, memberships in resolved.type_groups.items():
        for membership in memberships:
            if _active(membership, kept_groups):
                stack.append((name, membership.group))
                break
    for name in commands:
        for type_name in graph.command_refs[name]:
            stack.append((type_name, name))

    while stack:
        name, referrer = stack.pop()
        if name in removed_types:
            raise DanglingReference(name, referrer)
        if name in kept_types:
            continue
        kept_types.add(name)
        for dep in graph.references.get(name, ()):
            stack.append((dep, name))
        for constant in graph.constant_refs.get(name, ()):
            if constant in removed_constants:
                raise DanglingReference(constant, name)
            needed_constants.add(constant)

    # Constants: grouped ones follow their groups, block values their enum.
    constants: list[str] = []
    for name, constant in registry.constants.items():
        memberships = resolved.constant_groups.get(name, ())
        owner = constant.type_name
        if owner is not None and owner in registry.types:
            if resolve_alias(registry, owner).kind == KIND_ENUM and owner not in kept_types:
                continue
        if name in needed_constants:
            constants.append(name)
        elif memberships:
            if any(_active(m, kept_groups) for m in memberships):
                constants.append(name)
        elif name not in removed_constants:
            constants.append(name)

    ordered_types = tuple(name for name in resolved.type_order if name in kept_types)
    ordered_groups = tuple(
        name for name in registry.groups if name in kept_groups
    )
    return FilteredRegistry(
        registry=registry,
        graph=graph,
        types=ordered_types,
        commands=commands,
        constants=tuple(constants),
        groups=ordered_groups,
        group_commands={
            name: tuple(group_commands[name]) for name in ordered_groups
        },
        excluded_groups=excluded,
        command_platforms=command_platforms,
    )
