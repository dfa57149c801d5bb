"""Package writer for the generated bindings.

Pure formatting functions turn module specs into source text; the I/O shell
writes the whole package into a staging directory and swaps it into place,
so a failed run never leaves half-written bindings behind.
"""

import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .config import VulkanVersion
from .errors import EmissionFailure

# ===--- Module stem constants ---=== #
# Single source of truth for all module filenames.

MODULE_BASE_TYPES: str = "vk_base_types"
MODULE_ENUMS: str = "vk_enums"
MODULE_HANDLES: str = "vk_handles"
MODULE_TYPES: str = "vk_types"
MODULE_COMMANDS: str = "vk_commands"
MODULE_LOADER: str = "vk_loader"

MODULE_ORDER: tuple[str, ...] = (
    MODULE_BASE_TYPES,
    MODULE_ENUMS,
    MODULE_HANDLES,
    MODULE_TYPES,
    MODULE_COMMANDS,
    MODULE_LOADER,
)
"""Dependency order of the generated modules.

Each module star-imports every module before it, so this is also the
order in which `__init__.py` re-exports them."""

INIT_FILENAME = "__init__.py"


# ===--- Shared run metadata ---=== #


@dataclass(frozen=True)
class WriteConfig:
    """Generation metadata embedded in every file preamble.

    Attributes:
        registry_version: Registry version label, e.g. "1.4.343".
        api: API variant the bindings were generated for.
        target_version: Highest core version kept, or None for all.
        extensions: Selected extensions, or None for every extension.
        platforms: Platform tags in scope.
    """

    registry_version: str
    api: str = "vulkan"
    target_version: VulkanVersion | None = None
    extensions: frozenset[str] | None = frozenset()
    platforms: frozenset[str] = frozenset()


# ===--- Import spec types ---=== #


@dataclass(frozen=True)
class ExternalImport:
    """Import from a non-sibling module (ctypes, sys).

    Renders as `import <module>` when names is empty, otherwise as
    `from <module> import <name1>, <name2>, ...`.
    """

    module: str
    names: tuple[str, ...] = ()


@dataclass(frozen=True)
class SiblingImport:
    """Import from a sibling module in the same package.

    Renders as:
        from .<module_stem> import <name1>, <name2>, ...

    Attributes:
        module_stem: Module filename stem without .py, e.g. "vk_base_types".
            Use MODULE_* constants.
        names: Names to import; ("*",) for a wildcard import. Must be
            non-empty.
    """

    module_stem: str
    names: tuple[str, ...]


@dataclass(frozen=True)
class ModuleSpec:
    """Complete input for one generated module file (not __init__.py).

    Attributes:
        filename: Output filename including .py extension.
        external_imports: Non-package imports, in declaration order.
        sibling_imports: Same-package imports, in declaration order.
        content_lines: Generated source lines (the body, without header or
            imports), each without a trailing newline.
    """

    filename: str
    external_imports: tuple[ExternalImport, ...]
    sibling_imports: tuple[SiblingImport, ...]
    content_lines: tuple[str, ...]


# ===--- __init__.py spec types ---=== #


@dataclass(frozen=True)
class InitReExport:
    """One module's re-export entry in __init__.py.

    Wildcard (wildcard=True):
        from .<module_stem> import *

    Selective with multiple names (wildcard=False):
        from .<module_stem> import (
            Name1,
            Name2,
        )

    Selective with exactly one name:
        from .<module_stem> import Name1
    """

    module_stem: str
    wildcard: bool
    names: tuple[str, ...]


@dataclass(frozen=True)
class InitModuleSpec:
    re_exports: tuple[InitReExport, ...]


# ===--- Write result types ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated file.

    Attributes:
        filename: Filename written, e.g. "vk_types.py" or "__init__.py".
        path: Absolute final path of the file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


@dataclass(frozen=True)
class PackageWriteResult:
    output_dir: Path
    files: tuple[FileWriteResult, ...]

    @property
    def total_lines(self) -> int:
        """Sum of line_count across all written files."""
        return sum(f.line_count for f in self.files)


# ===--- Pure formatting functions ---=== #

_HEADER_BORDER: str = "# x-------------------------------------------x #"


def _describe_target(config: WriteConfig) -> str:
    if config.target_version is None:
        return "all core versions"
    return f"Vulkan {config.target_version}"


def _describe_extensions(config: WriteConfig) -> str:
    if config.extensions is None:
        return "all"
    if not config.extensions:
        return "none"
    return ", ".join(sorted(config.extensions))


def format_file_header(config: WriteConfig) -> list[str]:
    """Return comment-block lines for a generated module file header.

    Output format:
        # x-------------------------------------------x #
        # | Vulkan bindings for Python (ctypes)
        # | Generated by vkbindgen
        # | Source: vk.xml 1.4.343
        # | API: vulkan
        # | Target: Vulkan 1.3
        # | Extensions: VK_EXT_debug_utils, VK_KHR_swapchain
        # | Platforms: xlib
        # x-------------------------------------------x #

    Extensions and platforms are sorted so the header is identical for
    identical configurations. The Platforms line is omitted when no
    platform tag is in scope.

    Raises:
        ValueError: If config.registry_version is empty.
    """
    if not config.registry_version:
        raise ValueError("registry_version must not be empty")

    lines: list[str] = [
        _HEADER_BORDER,
        "# | Vulkan bindings for Python (ctypes)",
        "# | Generated by vkbindgen",
        f"# | Source: vk.xml {config.registry_version}",
        f"# | API: {config.api}",
        f"# | Target: {_describe_target(config)}",
        f"# | Extensions: {_describe_extensions(config)}",
    ]
    if config.platforms:
        lines.append(f"# | Platforms: {', '.join(sorted(config.platforms))}")
    lines.append(_HEADER_BORDER)
    return lines


def format_import_block(
    external_imports: tuple[ExternalImport, ...],
    sibling_imports: tuple[SiblingImport, ...],
) -> list[str]:
    """Return import statement lines for a module file.

    External imports come first; a single blank line separates them from
    sibling imports when both groups are non-empty.

    Raises:
        ValueError: If a SiblingImport has an empty names tuple.
    """
    for imp in sibling_imports:
        if not imp.names:
            raise ValueError(
                f"SiblingImport for module '{imp.module_stem}' has empty names tuple"
            )

    lines: list[str] = []
    for imp in external_imports:
        if imp.names:
            lines.append(f"from {imp.module} import {', '.join(imp.names)}")
        else:
            lines.append(f"import {imp.module}")

    if external_imports and sibling_imports:
        lines.append("")

    for imp in sibling_imports:
        lines.append(f"from .{imp.module_stem} import {', '.join(imp.names)}")

    return lines


def assemble_module_source(config: WriteConfig, spec: ModuleSpec) -> str:
    """Assemble a complete module source string from a ModuleSpec.

    File structure:
        <header_comment_block>
                                    <- blank line
        <import_block>              <- when present
                                    <- blank line
        <content_lines>
                                    <- trailing newline

    Raises:
        ValueError: If spec.filename is empty or does not end with ".py".
    """
    if not spec.filename or not spec.filename.endswith(".py"):
        raise ValueError(
            f"spec.filename must be non-empty and end with '.py', got {spec.filename!r}"
        )

    parts: list[str] = list(format_file_header(config))

    if spec.external_imports or spec.sibling_imports:
        parts.append("")
        parts.extend(format_import_block(spec.external_imports, spec.sibling_imports))

    if spec.content_lines:
        parts.append("")
        parts.extend(spec.content_lines)

    return "\n".join(parts) + "\n"


def assemble_init_source(config: WriteConfig, init_spec: InitModuleSpec) -> str:
    """Assemble the package __init__.py: a docstring plus re-exports.

    Raises:
        ValueError: If a selective InitReExport has no names.
    """
    for re_export in init_spec.re_exports:
        if not re_export.wildcard and not re_export.names:
            raise ValueError(
                f"InitReExport for module '{re_export.module_stem}' has "
                f"wildcard=False but empty names tuple"
            )

    docstring = (
        f'"""Vulkan bindings ({config.api}, {_describe_target(config)}, '
        f"extensions: {_describe_extensions(config)}). "
        f'Generated by vkbindgen from vk.xml {config.registry_version}."""'
    )
    parts: list[str] = [docstring, ""]

    for re_export in init_spec.re_exports:
        if re_export.wildcard:
            parts.append(f"from .{re_export.module_stem} import *")
        elif len(re_export.names) == 1:
            parts.append(f"from .{re_export.module_stem} import {re_export.names[0]}")
        else:
            name_lines = "\n".join(f"    {name}," for name in re_export.names)
            parts.append(f"from .{re_export.module_stem} import (\n{name_lines}\n)")

    return "\n".join(parts) + "\n"


def render_package(
    config: WriteConfig,
    module_specs: tuple[ModuleSpec, ...],
    init_spec: InitModuleSpec,
) -> dict[str, str]:
    """Assemble every file of the package in memory, in write order."""
    sources = {spec.filename: assemble_module_source(config, spec) for spec in module_specs}
    sources[INIT_FILENAME] = assemble_init_source(config, init_spec)
    return sources


# ===--- Writer I/O functions ---=== #


def write_source_file(output_dir: Path, filename: str, content: str) -> FileWriteResult:
    """Write one source file and describe it."""
    file_path = Path(output_dir) / filename
    data = content.encode("utf-8")
    with open(file_path, "wb") as handle:
        handle.write(data)
    return FileWriteResult(
        filename=filename,
        path=file_path.resolve(),
        line_count=content.count("\n"),
        byte_count=len(data),
    )


def _swap_into_place(staging: Path, output_dir: Path) -> None:
    previous = output_dir.with_name(f".{output_dir.name}.previous")
    if previous.exists():
        shutil.rmtree(previous)
    if output_dir.exists():
        os.replace(output_dir, previous)
    try:
        os.replace(staging, output_dir)
    except OSError:
        if previous.exists():
            os.replace(previous, output_dir)
        raise
    if previous.exists():
        shutil.rmtree(previous)


def write_package(
    output_dir: Path,
    config: WriteConfig,
    module_specs: tuple[ModuleSpec, ...],
    init_spec: InitModuleSpec,
) -> PackageWriteResult:
    """Write all module files and __init__.py as one unit.

    Every source is assembled before anything touches the disk. Files go to
    a staging directory beside output_dir, which then replaces output_dir.
    On failure the staging directory is removed and any previous output is
    left as it was.

    Args:
        output_dir: Final package directory. Its parent is created if absent.
        config: Shared generation metadata passed to every assemble call.
        module_specs: Module specs, written in the provided order.
        init_spec: __init__.py re-export manifest. Written last.

    Returns:
        PackageWriteResult with paths under the final output_dir.

    Raises:
        ValueError: Propagated from any assemble_* call on an invalid spec.
        EmissionFailure: If output_dir has no name or any filesystem
            operation fails.
    """
    output_dir = Path(output_dir)
    if not output_dir.name:
        raise EmissionFailure(output_dir, "output directory has no name")
    sources = render_package(config, module_specs, init_spec)

    staging: Path | None = None
    try:
        output_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{output_dir.name}-", dir=output_dir.parent)
        )
        os.chmod(staging, 0o755)
        for filename, content in sources.items():
            write_source_file(staging, filename, content)
        _swap_into_place(staging, output_dir)
    except OSError as err:
        raise EmissionFailure(output_dir, str(err)) from err
    finally:
        if staging is not None and staging.exists():
            shutil.rmtree(staging, ignore_errors=True)

    files = tuple(
        FileWriteResult(
            filename=filename,
            path=(output_dir / filename).resolve(),
            line_count=content.count("\n"),
            byte_count=len(content.encode("utf-8")),
        )
        for filename, content in sources.items()
    )
    return PackageWriteResult(output_dir=output_dir, files=files)
