import importlib
import sys
from pathlib import Path

import pytest

from vkbindgen import cli, pipeline
from vkbindgen.config import FilterConfig, GenerateConfig, VulkanVersion
from vkbindgen.errors import DanglingReference, MalformedRegistry
from vkbindgen.pipeline import build_write_config, run_generate
from vkbindgen.writer import INIT_FILENAME, MODULE_ORDER


def _write_registry(tmp_path: Path, inner_xml: str) -> Path:
    vk_xml = tmp_path / "vk.xml"
    vk_xml.write_text(
        f'<?xml version="1.0" encoding="UTF-8"?>\n<registry>{inner_xml}</registry>\n',
        encoding="utf-8",
    )
    return vk_xml


def _make_generate_config(
    vk_xml: Path,
    output_dir: Path,
    *,
    registry_version: str | None = None,
    filter_config: FilterConfig | None = None,
) -> GenerateConfig:
    return GenerateConfig(
        vk_xml=vk_xml,
        output_dir=output_dir,
        registry_version=registry_version,
        filter=filter_config or FilterConfig(),
    )


def test_t_01_build_write_config_maps_generate_config_fields_exactly(tmp_path: Path) -> None:
    config = _make_generate_config(
        tmp_path / "vk.xml",
        tmp_path / "out",
        filter_config=FilterConfig(
            platforms=frozenset({"xlib"}),
            api_version=VulkanVersion(1, 2),
            extensions=frozenset({"VK_KHR_surface"}),
        ),
    )

    write_config = build_write_config(config, "1.4.343")

    assert write_config.registry_version == "1.4.343"
    assert write_config.api == "vulkan"
    assert write_config.target_version == VulkanVersion(1, 2)
    assert write_config.extensions == frozenset({"VK_KHR_surface"})
    assert write_config.platforms == frozenset({"xlib"})


def test_t_02_build_write_config_rejects_empty_registry_version(tmp_path: Path) -> None:
    config = _make_generate_config(tmp_path / "vk.xml", tmp_path / "out")

    with pytest.raises(ValueError, match="registry_version"):
        build_write_config(config, "")


def test_t_03_run_generate_writes_the_package_and_reports_progress(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    scenario_xml: str,
) -> None:
    vk_xml = _write_registry(tmp_path, scenario_xml)
    output_dir = tmp_path / "bindings"

    result = run_generate(_make_generate_config(vk_xml, output_dir))

    assert [f.filename for f in result.files] == [
        *(f"{stem}.py" for stem in MODULE_ORDER),
        INIT_FILENAME,
    ]
    assert sorted(p.name for p in output_dir.iterdir()) == sorted(
        f.filename for f in result.files
    )
    types_source = (output_dir / "vk_types.py").read_text(encoding="utf-8")
    assert "# | Source: vk.xml 1.0" in types_source.splitlines()

    lines = capsys.readouterr().out.splitlines()
    assert lines[:3] == [
        f"Parsing: {vk_xml}",
        "  Registry: 16 types, 2 commands, 0 constants, 2 groups",
        "  Resolved: 16 types ordered",
    ]
    assert lines[3].startswith("  Filtered: ")
    assert lines[3].endswith(", 1 groups (1 excluded)")
    assert lines[4] == "  Emitting: 6 modules"
    assert lines[5] == f"  Written: 7 files, {result.total_lines} lines to {output_dir}"
    assert "Vulkan bindings generated:" in lines
    assert f"    {'core-1.0':<44}    1 commands" in lines


def test_t_04_run_generate_output_is_importable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    scenario_xml: str,
) -> None:
    vk_xml = _write_registry(tmp_path, scenario_xml)
    package_root = tmp_path / "site"
    run_generate(
        _make_generate_config(
            vk_xml,
            package_root / "scenario_bindings",
            filter_config=FilterConfig(platforms=frozenset({"p"}), extensions=None),
        )
    )
    monkeypatch.syspath_prepend(str(package_root))

    try:
        pkg = importlib.import_module("scenario_bindings")
        assert list(pkg.COMMAND_TABLES) == ["core-1.0", "ext-X"]
        assert [field[0] for field in pkg.vk_loader.ext_X_Commands._fields_] == ["D"]
    finally:
        for name in list(sys.modules):
            if name == "scenario_bindings" or name.startswith("scenario_bindings."):
                del sys.modules[name]


def test_t_05_run_generate_regenerates_deterministically(
    tmp_path: Path,
    scenario_xml: str,
) -> None:
    vk_xml = _write_registry(tmp_path, scenario_xml)
    first_dir, second_dir = tmp_path / "first", tmp_path / "second"

    run_generate(_make_generate_config(vk_xml, first_dir))
    run_generate(_make_generate_config(vk_xml, second_dir))

    for path in sorted(first_dir.iterdir()):
        assert path.read_bytes() == (second_dir / path.name).read_bytes()


def test_t_06_run_generate_registry_version_override_reaches_headers(
    tmp_path: Path,
    scenario_xml: str,
) -> None:
    vk_xml = _write_registry(tmp_path, scenario_xml)
    output_dir = tmp_path / "out"

    run_generate(_make_generate_config(vk_xml, output_dir, registry_version="1.3.999"))

    base_source = (output_dir / "vk_base_types.py").read_text(encoding="utf-8")
    assert "# | Source: vk.xml 1.3.999" in base_source
    assert "VK_HEADER_VERSION = 999" in base_source


def test_t_07_run_generate_malformed_document_writes_nothing(tmp_path: Path) -> None:
    vk_xml = tmp_path / "vk.xml"
    vk_xml.write_text("<registry>\n<types>\n</registry>\n", encoding="utf-8")
    output_dir = tmp_path / "out"

    with pytest.raises(MalformedRegistry) as exc_info:
        run_generate(_make_generate_config(vk_xml, output_dir))

    assert exc_info.value.location.startswith(f"{vk_xml}:3:")
    assert not output_dir.exists()


def test_t_08_run_generate_propagates_stage_errors(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    scenario_xml: str,
) -> None:
    vk_xml = _write_registry(tmp_path, scenario_xml)
    output_dir = tmp_path / "out"

    def _fail(*_args: object) -> None:
        raise DanglingReference("A", "B")

    monkeypatch.setattr(pipeline, "filter_registry", _fail)
    with pytest.raises(DanglingReference):
        run_generate(_make_generate_config(vk_xml, output_dir))
    assert not output_dir.exists()


def test_t_09_main_generates_end_to_end(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    scenario_xml: str,
) -> None:
    vk_xml = _write_registry(tmp_path, scenario_xml)
    output_dir = tmp_path / "cli_out"

    cli.main(
        [
            "--vk-xml",
            str(vk_xml),
            "--output-dir",
            str(output_dir),
            "--all-extensions",
            "--platform",
            "p",
        ]
    )

    loader_source = (output_dir / "vk_loader.py").read_text(encoding="utf-8")
    assert '    table.D = _load_proc(get_proc_addr, handle, b"D", PFN_D)' in loader_source
    assert "# | Platforms: p" in loader_source
    assert "Vulkan bindings generated:" in capsys.readouterr().out


def test_t_10_main_reports_malformed_registry(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    vk_xml = _write_registry(
        tmp_path,
        '<types><type category="struct" name="Empty"/></types>',
    )

    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--vk-xml", str(vk_xml), "--output-dir", str(tmp_path / "out")])

    assert exc_info.value.code == 1
    assert capsys.readouterr().out.splitlines()[-1].startswith("Error [MALFORMED_REGISTRY]: ")
