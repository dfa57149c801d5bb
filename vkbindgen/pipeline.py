"""End-to-end generation run: parse -> resolve -> filter -> emit -> write."""

from .config import GenerateConfig
from .emitter import emit_bindings
from .filtering import filter_registry
from .parser import load_registry
from .resolver import resolve
from .summary import build_generation_summary, print_generation_summary
from .writer import PackageWriteResult, WriteConfig, write_package


def build_write_config(config: GenerateConfig, registry_version: str) -> WriteConfig:
    """Construct WriteConfig from GenerateConfig and the registry version label.

    Raises:
        ValueError: If registry_version is empty.
    """
    if not registry_version:
        raise ValueError("registry_version must not be empty")
    return WriteConfig(
        registry_version=registry_version,
        api=config.api,
        target_version=config.filter.api_version,
        extensions=config.filter.extensions,
        platforms=config.filter.platforms,
    )


def run_generate(config: GenerateConfig) -> PackageWriteResult:
    """Execute the complete generation pipeline for a GenerateConfig.

    Args:
        config: Validated GenerateConfig from build_config.

    Returns:
        PackageWriteResult describing every file written.

    Raises:
        MalformedRegistry: The document is not well-formed or violates the
            registry schema.
        CyclicTypeDependency: The type graph has a true cycle.
        DanglingReference: Filtering removed something a kept entity needs.
        EmissionFailure: Output could not be generated or written.
        OSError: The registry document could not be read.
    """
    print(f"Parsing: {config.vk_xml}")
    registry = load_registry(
        config.vk_xml, api=config.api, registry_version=config.registry_version
    )
    print(
        f"  Registry: {len(registry.types)} types, {len(registry.commands)} commands, "
        f"{len(registry.constants)} constants, {len(registry.groups)} groups"
    )

    resolved = resolve(registry)
    print(f"  Resolved: {len(resolved.type_order)} types ordered")

    filtered = filter_registry(resolved, config.filter)
    print(
        f"  Filtered: {len(filtered.types)} types, {len(filtered.commands)} commands, "
        f"{len(filtered.groups)} groups ({len(filtered.excluded_groups)} excluded)"
    )

    bindings = emit_bindings(filtered)
    print(f"  Emitting: {len(bindings.modules)} modules")

    write_config = build_write_config(config, registry.version)
    result = write_package(config.output_dir, write_config, bindings.modules, bindings.init)
    print(
        f"  Written: {len(result.files)} files, "
        f"{result.total_lines} lines to {result.output_dir}"
    )

    print_generation_summary(build_generation_summary(write_config, filtered, result))
    return result
