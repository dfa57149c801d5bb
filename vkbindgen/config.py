import argparse
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from .errors import ConfigError

DEFAULT_VK_XML = Path("vk.xml")
DEFAULT_OUTPUT_DIR = Path("vulkan_bindings")
DEFAULT_API = "vulkan"

VALID_APIS = {"vulkan", "vulkansc"}
_VERSION_RE = re.compile(r"^(\d+)\.(\d+)$")
_EXT_NAME_RE = re.compile(r"^VK_[A-Z0-9]+_[A-Za-z0-9_]+$")
_TAG_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


# ===--- Config contracts ---=== #


class VulkanVersion(NamedTuple):
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class FilterConfig:
    """What the Filter Stage keeps.

    Attributes:
        platforms: Platform tags considered in scope. Groups gated by any
            other platform are excluded. Empty means platform-independent
            entries only.
        authors: Author tags in scope, or None to accept every author.
        api_version: Highest core version kept, or None for all versions.
        extensions: Extensions selected for generation (closed over their
            dependencies by the filter), or None for every extension.
            Defaults to none, matching the command line without --ext.
    """

    platforms: frozenset[str] = frozenset()
    authors: frozenset[str] | None = None
    api_version: VulkanVersion | None = None
    extensions: frozenset[str] | None = frozenset()


@dataclass(frozen=True)
class GenerateConfig:
    vk_xml: Path
    output_dir: Path
    api: str = DEFAULT_API
    registry_version: str | None = None
    filter: FilterConfig = field(default_factory=FilterConfig)


# ===--- Validation ---=== #


def parse_version(raw: str) -> VulkanVersion:
    match = _VERSION_RE.match(raw.strip())
    if match is None:
        raise ConfigError(
            "INVALID_VERSION",
            f"Unsupported Vulkan version: {raw}",
            "Use MAJOR.MINOR, for example 1.3.",
        )
    return VulkanVersion(int(match.group(1)), int(match.group(2)))


def validate_extension_name(name: str) -> str:
    if _EXT_NAME_RE.match(name):
        return name
    raise ConfigError(
        "INVALID_EXTENSION_NAME",
        f"Invalid extension name: {name}",
        "Extension names must match VK_<VENDOR>_<name> (for example VK_KHR_swapchain).",
    )


def validate_platform_name(name: str) -> str:
    if _TAG_RE.match(name):
        return name
    raise ConfigError(
        "INVALID_PLATFORM_NAME",
        f"Invalid platform or author tag: {name}",
        "Tags are registry names such as xlib, win32 or KHR.",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


# ===--- Argument parsing ---=== #


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vkbindgen",
        description="Generate ctypes Vulkan bindings from the Khronos registry",
    )

    parser.add_argument("--vk-xml", type=Path, default=DEFAULT_VK_XML)
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("--api", type=str, default=DEFAULT_API)
    parser.add_argument("--registry-version", type=str, default=None)
    parser.add_argument("--version", type=str, default=None)

    ext_group = parser.add_mutually_exclusive_group()
    ext_group.add_argument("--ext", action="append", nargs="+", default=None)
    ext_group.add_argument("--all-extensions", action="store_true", default=False)

    parser.add_argument("--platform", action="append", nargs="+", default=None)
    parser.add_argument("--author", action="append", nargs="+", default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def _flatten(raw: list[list[str]] | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(name for group in raw for name in group)


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    raw_extensions = _flatten(args.ext)
    if raw_extensions and args.all_extensions:
        raise ConfigError(
            "CONFLICT_EXT_FLAGS",
            "Cannot combine --ext with --all-extensions.",
            "Use --ext with one or more names, or --all-extensions.",
        )

    if args.api not in VALID_APIS:
        raise ConfigError(
            "INVALID_API",
            f"Unsupported API: {args.api}",
            "Use one of: " + ", ".join(sorted(VALID_APIS)) + ".",
        )

    vk_xml = validate_path_exists(
        args.vk_xml,
        "--vk-xml",
        "Clone Vulkan-Docs:\n"
        "  git clone https://github.com/KhronosGroup/Vulkan-Docs.git\n"
        "Or pass a custom path: --vk-xml /your/path/to/vk.xml",
    )

    if args.all_extensions:
        extensions = None
    else:
        extensions = frozenset(validate_extension_name(n) for n in raw_extensions)

    raw_authors = _flatten(args.author)
    authors = (
        frozenset(validate_platform_name(a) for a in raw_authors)
        if raw_authors
        else None
    )

    filter_config = FilterConfig(
        platforms=frozenset(validate_platform_name(p) for p in _flatten(args.platform)),
        authors=authors,
        api_version=parse_version(args.version) if args.version else None,
        extensions=extensions,
    )
    return GenerateConfig(
        vk_xml=vk_xml,
        output_dir=args.output_dir,
        api=args.api,
        registry_version=args.registry_version,
        filter=filter_config,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    return validate_config(parse_args(argv))
