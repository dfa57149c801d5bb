import argparse
import importlib
import sys
import uuid
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path
from types import ModuleType

import pytest

from vkbindgen.config import FilterConfig
from vkbindgen.emitter import GeneratedBindings, emit_bindings
from vkbindgen.filtering import filter_registry
from vkbindgen.models import FilteredRegistry, Registry
from vkbindgen.parser import parse_registry
from vkbindgen.resolver import resolve
from vkbindgen.writer import WriteConfig, write_package

# Two structs, one command, one core version and one platform extension
# re-listing A.
SCENARIO_XML = """
<platforms>
    <platform name="p" protect="VK_USE_PLATFORM_P"/>
</platforms>
<types>
    <type category="struct" name="A">
        <member><type>uint32_t</type> <name>x</name></member>
    </type>
    <type category="struct" name="B">
        <member><type>A</type> <name>a</name></member>
    </type>
</types>
<commands>
    <command>
        <proto><type>A</type> <name>C</name></proto>
        <param><type>B</type> <name>b</name></param>
    </command>
    <command>
        <proto><type>void</type> <name>D</name></proto>
        <param><type>A</type>* <name>pA</name></param>
    </command>
</commands>
<feature api="vulkan" name="core-1.0" number="1.0">
    <require>
        <type name="A"/>
        <type name="B"/>
        <command name="C"/>
    </require>
</feature>
<extensions>
    <extension name="ext-X" number="1" supported="vulkan" platform="p">
        <require>
            <type name="A"/>
            <command name="D"/>
        </require>
    </extension>
</extensions>
"""

@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    vk_xml = tmp_path / "vk.xml"
    vk_xml.write_text("<registry />\n", encoding="utf-8")
    return {"vk_xml": vk_xml, "output_dir": tmp_path / "out"}


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "vk_xml": existing_paths["vk_xml"],
            "output_dir": existing_paths["output_dir"],
            "api": "vulkan",
            "registry_version": None,
            "version": None,
            "ext": None,
            "all_extensions": False,
            "platform": None,
            "author": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_registry_root() -> Callable[[str], ET.Element]:
    def _make_registry_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f"<registry>{inner_xml}</registry>")

    return _make_registry_root


@pytest.fixture
def make_registry(
    make_registry_root: Callable[[str], ET.Element],
) -> Callable[..., Registry]:
    def _make_registry(inner_xml: str, **kwargs: object) -> Registry:
        return parse_registry(make_registry_root(inner_xml), **kwargs)

    return _make_registry


@pytest.fixture
def make_filtered(
    make_registry: Callable[..., Registry],
) -> Callable[..., FilteredRegistry]:
    def _make_filtered(
        inner_xml: str, config: FilterConfig | None = None, **kwargs: object
    ) -> FilteredRegistry:
        registry = make_registry(inner_xml, **kwargs)
        return filter_registry(resolve(registry), config or FilterConfig())

    return _make_filtered


@pytest.fixture
def make_bindings(
    make_filtered: Callable[..., FilteredRegistry],
) -> Callable[..., GeneratedBindings]:
    def _make_bindings(
        inner_xml: str, config: FilterConfig | None = None, **kwargs: object
    ) -> GeneratedBindings:
        return emit_bindings(make_filtered(inner_xml, config, **kwargs))

    return _make_bindings


@pytest.fixture
def import_generated(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    """Write bindings as a uniquely named package and import it."""
    package_root = tmp_path / "generated"
    package_root.mkdir()
    monkeypatch.syspath_prepend(str(package_root))
    imported: list[str] = []

    def _import(bindings: GeneratedBindings) -> ModuleType:
        name = f"vkgen_{uuid.uuid4().hex}"
        write_package(
            package_root / name,
            WriteConfig(registry_version="1.0.0"),
            bindings.modules,
            bindings.init,
        )
        importlib.invalidate_caches()
        imported.append(name)
        return importlib.import_module(name)

    yield _import

    for name in imported:
        for module_name in list(sys.modules):
            if module_name == name or module_name.startswith(f"{name}."):
                del sys.modules[module_name]


@pytest.fixture
def scenario_xml() -> str:
    return SCENARIO_XML
