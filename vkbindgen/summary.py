"""Post-generation console report."""

from dataclasses import dataclass

from .models import (
    GROUP_FEATURE,
    KIND_BASETYPE,
    KIND_BITMASK,
    KIND_ENUM,
    KIND_EXTERNAL,
    KIND_FUNCPOINTER,
    KIND_HANDLE,
    KIND_STRUCT,
    KIND_UNION,
    FilteredRegistry,
)
from .writer import FileWriteResult, PackageWriteResult, WriteConfig


@dataclass(frozen=True)
class CategoryCount:
    """Count of items in one category, split by core vs. extension.

    Invariant: core + ext == total. Enforced by build_generation_counts.

    Attributes:
        total: Primary items (not aliases) in this category.
        core: Items some kept core version introduces.
        ext: Items only extensions (or type references) bring in.
    """

    total: int
    core: int
    ext: int


@dataclass(frozen=True)
class GenerationCounts:
    base_types: CategoryCount
    enums: CategoryCount
    bitmasks: CategoryCount
    handles: CategoryCount
    structs: CategoryCount
    unions: CategoryCount
    funcpointers: CategoryCount
    commands: CategoryCount


@dataclass(frozen=True)
class GenerationSummary:
    """Complete, immutable data for the post-generation console report.

    Attributes:
        target_label: Human-readable target built by build_target_label.
        source_label: Registry source string, e.g. "vk.xml 1.4.343".
        output_dir: Output directory path as string.
        counts: Per-category item counts.
        group_tables: Kept FeatureGroup -> number of commands in its table.
        excluded_groups: Number of groups removed by platform/author tags.
        files: Ordered write results from PackageWriteResult.files.
    """

    target_label: str
    source_label: str
    output_dir: str
    counts: GenerationCounts
    group_tables: tuple[tuple[str, int], ...]
    excluded_groups: int
    files: tuple[FileWriteResult, ...]


def build_target_label(config: WriteConfig) -> str:
    """Build the human-readable target string for the summary Target: row.

    Three cases in priority order:
    1. config.extensions is None  -> "<version> + all extensions"
    2. config.extensions non-empty -> "<version> + ext1, ext2, ..." (sorted)
    3. config.extensions empty     -> "<version>"

    <version> is "Vulkan X.Y", or "all core versions" without a cap.
    """
    if config.target_version is None:
        version_str = "all core versions"
    else:
        version_str = f"Vulkan {config.target_version}"
    if config.extensions is None:
        return f"{version_str} + all extensions"
    if config.extensions:
        return f"{version_str} + {', '.join(sorted(config.extensions))}"
    return version_str


def build_generation_counts(filtered: FilteredRegistry) -> GenerationCounts:
    """Compute per-category totals and core/ext splits from the filtered registry."""
    registry = filtered.registry
    core_types: set[str] = set()
    core_commands: set[str] = set()
    for group_name in filtered.groups:
        group = registry.groups[group_name]
        if group.kind == GROUP_FEATURE:
            core_types.update(group.types)
            core_commands.update(filtered.group_commands.get(group_name, ()))

    def _count(names: list[str], core_set: set[str]) -> CategoryCount:
        total = len(names)
        core = sum(1 for n in names if n in core_set)
        ext = total - core
        assert core + ext == total, f"CategoryCount invariant violated: {core}+{ext}!={total}"
        return CategoryCount(total=total, core=core, ext=ext)

    def _of_kind(*kinds: str) -> list[str]:
        return [n for n in filtered.types if registry.types[n].kind in kinds]

    return GenerationCounts(
        base_types=_count(_of_kind(KIND_BASETYPE, KIND_EXTERNAL), core_types),
        enums=_count(_of_kind(KIND_ENUM), core_types),
        bitmasks=_count(_of_kind(KIND_BITMASK), core_types),
        handles=_count(_of_kind(KIND_HANDLE), core_types),
        structs=_count(_of_kind(KIND_STRUCT), core_types),
        unions=_count(_of_kind(KIND_UNION), core_types),
        funcpointers=_count(_of_kind(KIND_FUNCPOINTER), core_types),
        commands=_count(
            [n for n in filtered.commands if registry.commands[n].alias is None],
            core_commands,
        ),
    )


def build_generation_summary(
    write_config: WriteConfig,
    filtered: FilteredRegistry,
    write_result: PackageWriteResult,
) -> GenerationSummary:
    return GenerationSummary(
        target_label=build_target_label(write_config),
        source_label=f"vk.xml {write_config.registry_version}",
        output_dir=str(write_result.output_dir),
        counts=build_generation_counts(filtered),
        group_tables=tuple(
            (name, len(filtered.group_commands.get(name, ()))) for name in filtered.groups
        ),
        excluded_groups=len(filtered.excluded_groups),
        files=write_result.files,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary to a multi-section console string.

    Split annotations appear only when ext > 0. Line counts use thousands
    separators. Returns a string with exactly one trailing newline.
    """
    lines: list[str] = []
    lines.append("Vulkan bindings generated:")
    lines.append("")
    lines.append(f"  Target:     {summary.target_label}")
    lines.append(f"  Source:     {summary.source_label}")
    lines.append(f"  Output:     {summary.output_dir}")
    lines.append("")
    lines.append("  Types generated:")

    def _type_row(label: str, cc: CategoryCount) -> str:
        count_str = f"{cc.total:>6}"
        if cc.ext > 0:
            return f"    {label:<15}{count_str}  ({cc.core} core + {cc.ext} from extensions)"
        return f"    {label:<15}{count_str}"

    counts = summary.counts
    lines.append(_type_row("Base types:", counts.base_types))
    lines.append(_type_row("Enums:", counts.enums))
    lines.append(_type_row("Bitmasks:", counts.bitmasks))
    lines.append(_type_row("Handles:", counts.handles))
    lines.append(_type_row("Structs:", counts.structs))
    lines.append(_type_row("Unions:", counts.unions))
    lines.append(_type_row("Callbacks:", counts.funcpointers))
    lines.append(_type_row("Commands:", counts.commands))

    lines.append("")
    lines.append(
        f"  Command tables: {len(summary.group_tables)}"
        f" ({summary.excluded_groups} groups excluded by platform/author)"
    )
    for name, command_count in summary.group_tables:
        lines.append(f"    {name:<44} {command_count:>4} commands")

    lines.append("")
    lines.append("  Files written:")
    for file_result in summary.files:
        line_str = f"{file_result.line_count:>6,} lines"
        lines.append(f"    {file_result.filename:<28} {line_str}")

    total_lines = sum(f.line_count for f in summary.files)
    lines.append("")
    lines.append(f"  Total: {total_lines:,} lines across {len(summary.files)} files")
    lines.append("")

    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    """Print the generation summary to stdout.

    Kept separate so format_generation_summary stays testable without
    stdout capture.
    """
    print(format_generation_summary(summary), end="")
