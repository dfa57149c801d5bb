import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

from vkbindgen.errors import MalformedRegistry
from vkbindgen.models import (
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
    KIND_PRIMITIVE,
    KIND_STRUCT,
    KIND_UNION,
    Member,
    Registry,
)
from vkbindgen.parser import (
    extract_registry_version,
    load_registry,
    parse_c_literal,
    parse_member,
    parse_registry,
)

VK_RESULT_XML = """
<types>
    <type name="VkResult" category="enum"/>
</types>
<enums name="VkResult" type="enum">
    <enum value="0" name="VK_SUCCESS"/>
    <enum value="1" name="VK_NOT_READY"/>
    <enum value="-1" name="VK_ERROR_OUT_OF_HOST_MEMORY"/>
</enums>
"""


# ===--- Literals ---=== #


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("256", 256),
        ("0x10", 16),
        ("(-1)", -1),
        ("(~0U)", 0xFFFFFFFF),
        ("(~1U)", 0xFFFFFFFE),
        ("(~0ULL)", 0xFFFFFFFFFFFFFFFF),
        ("1000.0F", 1000.0),
        ('"VK_KHR_surface"', b"VK_KHR_surface"),
    ],
)
def test_parse_c_literal_evaluates_registry_literals(
    raw: str, expected: int | float | bytes
) -> None:
    value = parse_c_literal(raw, "VK_X", "registry/enums[1]")

    assert value == expected
    assert type(value) is type(expected)


def test_parse_c_literal_rejects_expressions() -> None:
    with pytest.raises(MalformedRegistry) as exc_info:
        parse_c_literal("VK_A | VK_B", "VK_X", "registry/enums[1]/enum[3]")

    assert exc_info.value.element == "VK_X"
    assert exc_info.value.location == "registry/enums[1]/enum[3]"
    assert "unparsable literal" in exc_info.value.reason


# ===--- Members ---=== #


@pytest.mark.parametrize(
    ("xml", "expected"),
    [
        (
            "<member><type>uint32_t</type> <name>count</name></member>",
            Member("count", "uint32_t"),
        ),
        (
            "<member>const <type>void</type>* <name>pNext</name></member>",
            Member("pNext", "void", pointer_depth=1, is_const=True),
        ),
        (
            "<member>const <type>char</type>* const* <name>ppNames</name></member>",
            Member("ppNames", "char", pointer_depth=2, is_const=True),
        ),
        (
            "<member><type>float</type> <name>matrix</name>[3][4]</member>",
            Member("matrix", "float", array_dims=("3", "4")),
        ),
        (
            "<member><type>char</type> <name>deviceName</name>"
            "[<enum>VK_MAX_NAME</enum>]</member>",
            Member("deviceName", "char", array_dims=("VK_MAX_NAME",)),
        ),
        (
            "<member><type>uint32_t</type> <name>mask</name>:8</member>",
            Member("mask", "uint32_t", bitwidth=8),
        ),
    ],
)
def test_parse_member_reads_pointers_arrays_and_bitfields(xml: str, expected: Member) -> None:
    assert parse_member(ET.fromstring(xml), "S", "registry/types/type[1]") == expected


def test_parse_member_requires_type_and_name() -> None:
    with pytest.raises(MalformedRegistry) as exc_info:
        parse_member(
            ET.fromstring("<member><name>orphan</name></member>"),
            "VkThing",
            "registry/types/type[4][@name='VkThing']/member[2]",
        )

    assert exc_info.value.element == "member of VkThing"
    assert exc_info.value.location.endswith("/member[2]")


# ===--- Types ---=== #


def test_parse_registry_classifies_type_categories(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <types>
            <type requires="vk_platform" name="uint32_t"/>
            <type requires="X11/Xlib.h" name="Display"/>
            <type category="define">#define <name>VK_HEADER_VERSION</name> 7</type>
            <type category="basetype">typedef <type>uint32_t</type> <name>VkFlags</name>;</type>
            <type category="basetype">struct <name>ANativeWindow</name>;</type>
            <type category="basetype">typedef void* <name>MTLDevice_id</name>;</type>
            <type category="enum" name="VkThingFlagBits"/>
            <type requires="VkThingFlagBits" category="bitmask">typedef <type>VkFlags</type> <name>VkThingFlags</name>;</type>
            <type category="handle"><type>VK_DEFINE_HANDLE</type>(<name>VkInstance</name>)</type>
            <type category="handle" parent="VkInstance"><type>VK_DEFINE_NON_DISPATCHABLE_HANDLE</type>(<name>VkSurfaceKHR</name>)</type>
            <type category="struct" name="VkExtent2D">
                <member><type>uint32_t</type> <name>width</name></member>
                <member><type>uint32_t</type> <name>height</name></member>
            </type>
            <type category="union" name="VkClearColorValue">
                <member><type>float</type> <name>float32</name>[4]</member>
            </type>
            <type category="struct" name="VkExtent2DKHR" alias="VkExtent2D"/>
        </types>
        """
    )

    kinds = {name: typedef.kind for name, typedef in registry.types.items()}
    assert kinds["uint32_t"] == KIND_PRIMITIVE
    assert kinds["Display"] == KIND_EXTERNAL
    assert kinds["VK_HEADER_VERSION"] == KIND_DEFINE
    assert kinds["VkFlags"] == KIND_BASETYPE
    assert kinds["ANativeWindow"] == KIND_EXTERNAL
    assert kinds["MTLDevice_id"] == KIND_BASETYPE
    assert kinds["VkThingFlagBits"] == KIND_ENUM
    assert kinds["VkThingFlags"] == KIND_BITMASK
    assert kinds["VkInstance"] == KIND_HANDLE
    assert kinds["VkExtent2D"] == KIND_STRUCT
    assert kinds["VkClearColorValue"] == KIND_UNION
    assert kinds["VkExtent2DKHR"] == KIND_ALIAS

    assert registry.types["Display"].header == "X11/Xlib.h"
    assert registry.types["MTLDevice_id"].underlying == Member("", "void", pointer_depth=1)
    assert registry.types["VkThingFlags"].bits == "VkThingFlagBits"
    assert registry.types["VkInstance"].dispatchable is True
    assert registry.types["VkSurfaceKHR"].dispatchable is False
    assert registry.types["VkSurfaceKHR"].parents == ("VkInstance",)
    assert registry.types["VkExtent2DKHR"].alias == "VkExtent2D"


def test_parse_registry_keeps_declaration_order(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <types>
            <type category="struct" name="Second">
                <member><type>First</type> <name>first</name></member>
            </type>
            <type category="struct" name="First">
                <member><type>uint32_t</type> <name>x</name></member>
            </type>
        </types>
        """
    )

    declared = [name for name in registry.types if name in ("Second", "First")]
    assert declared == ["Second", "First"]
    assert registry.types["Second"].index < registry.types["First"].index


@pytest.mark.parametrize(
    "xml",
    [
        """<type category="funcpointer" requires="VkBool32">
            <proto><type>VkBool32</type> (VKAPI_PTR *<name>PFN_vkCallback</name>)</proto>
            <param>const <type>char</type>* <name>pMessage</name></param>
            <param><type>void</type>* <name>pUserData</name></param>
        </type>""",
        """<type category="funcpointer">typedef <type>VkBool32</type> (VKAPI_PTR *<name>PFN_vkCallback</name>)(
            const <type>char</type>* pMessage,
            <type>void</type>* pUserData);</type>""",
    ],
    ids=["proto", "typedef"],
)
def test_parse_funcpointer_accepts_both_declaration_forms(
    make_registry: Callable[..., Registry],
    xml: str,
) -> None:
    registry = make_registry(
        f"""
        <types>
            <type category="basetype">typedef <type>uint32_t</type> <name>VkBool32</name>;</type>
            {xml}
        </types>
        """
    )

    callback = registry.types["PFN_vkCallback"]
    assert callback.kind == KIND_FUNCPOINTER
    assert callback.returns == Member("", "VkBool32")
    assert callback.members == (
        Member("pMessage", "char", pointer_depth=1, is_const=True),
        Member("pUserData", "void", pointer_depth=1),
    )


def test_parse_legacy_funcpointer_without_parameters(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <types>
            <type category="funcpointer">typedef void (VKAPI_PTR *<name>PFN_vkVoidFunction</name>)(void);</type>
        </types>
        """
    )

    callback = registry.types["PFN_vkVoidFunction"]
    assert callback.returns == Member("", "void")
    assert callback.members == ()


def test_api_attributes_select_the_requested_variant(
    make_registry: Callable[..., Registry],
) -> None:
    inner = """
        <types>
            <type category="struct" name="S">
                <member><type>uint32_t</type> <name>always</name></member>
                <member api="vulkansc"><type>uint32_t</type> <name>scOnly</name></member>
            </type>
            <type category="struct" name="ScStruct" api="vulkansc">
                <member><type>uint32_t</type> <name>x</name></member>
            </type>
        </types>
        <extensions>
            <extension name="VK_KHR_a" number="1" supported="vulkan,vulkansc"/>
            <extension name="VK_KHR_b" number="2" supported="disabled"/>
            <extension name="VK_KHR_c" number="3" supported="vulkansc"/>
        </extensions>
    """

    vulkan = make_registry(inner)
    assert [m.name for m in vulkan.types["S"].members] == ["always"]
    assert "ScStruct" not in vulkan.types
    assert list(vulkan.groups) == ["VK_KHR_a"]

    vulkansc = make_registry(inner, api="vulkansc")
    assert [m.name for m in vulkansc.types["S"].members] == ["always", "scOnly"]
    assert "ScStruct" in vulkansc.types
    assert list(vulkansc.groups) == ["VK_KHR_a", "VK_KHR_c"]


# ===--- Enums and constants ---=== #


def test_enum_block_values_are_owned_by_their_enum(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(VK_RESULT_XML)

    assert [(c.name, c.value, c.type_name) for c in registry.constants.values()] == [
        ("VK_SUCCESS", 0, "VkResult"),
        ("VK_NOT_READY", 1, "VkResult"),
        ("VK_ERROR_OUT_OF_HOST_MEMORY", -1, "VkResult"),
    ]


def test_bitmask_enum_blocks_record_width_and_bit_positions(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <types>
            <type name="VkAccessFlagBits2" category="enum"/>
        </types>
        <enums name="VkAccessFlagBits2" type="bitmask" bitwidth="64">
            <enum bitpos="0" name="VK_ACCESS_2_READ_BIT"/>
            <enum bitpos="40" name="VK_ACCESS_2_HIGH_BIT"/>
            <enum name="VK_ACCESS_2_READ_BIT_KHR" alias="VK_ACCESS_2_READ_BIT"/>
        </enums>
        """
    )

    enum = registry.types["VkAccessFlagBits2"]
    assert enum.bitwidth == 64
    assert enum.is_bitmask is True
    assert registry.constants["VK_ACCESS_2_READ_BIT"].value == 1
    assert registry.constants["VK_ACCESS_2_HIGH_BIT"].value == 1 << 40
    alias = registry.constants["VK_ACCESS_2_READ_BIT_KHR"]
    assert alias.value is None
    assert alias.alias == "VK_ACCESS_2_READ_BIT"


def test_api_constants_keep_their_declared_type(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <enums name="API Constants">
            <enum type="uint32_t" value="256" name="VK_MAX_PHYSICAL_DEVICE_NAME_SIZE"/>
            <enum type="float" value="1000.0F" name="VK_LOD_CLAMP_NONE"/>
            <enum type="uint64_t" value="(~0ULL)" name="VK_WHOLE_SIZE"/>
        </enums>
        """
    )

    assert registry.constants["VK_MAX_PHYSICAL_DEVICE_NAME_SIZE"].type_name == "uint32_t"
    assert registry.constants["VK_LOD_CLAMP_NONE"].value == 1000.0
    assert registry.constants["VK_WHOLE_SIZE"].value == 2**64 - 1


@pytest.mark.parametrize(
    ("attrs", "expected"),
    [
        ('offset="0"', 1000001000),
        ('offset="3" dir="-"', -1000001003),
        ('offset="1" extnumber="10"', 1000009001),
    ],
)
def test_extension_enum_offsets_use_the_extension_number(
    make_registry: Callable[..., Registry],
    attrs: str,
    expected: int,
) -> None:
    registry = make_registry(
        VK_RESULT_XML
        + f"""
        <extensions>
            <extension name="VK_KHR_x" number="2" supported="vulkan">
                <require>
                    <enum {attrs} extends="VkResult" name="VK_EXTENDED"/>
                </require>
            </extension>
        </extensions>
        """
    )

    constant = registry.constants["VK_EXTENDED"]
    assert constant.value == expected
    assert constant.type_name == "VkResult"
    assert registry.groups["VK_KHR_x"].constants == ("VK_EXTENDED",)


def test_extension_string_and_version_constants(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <extensions>
            <extension name="VK_KHR_surface" number="1" supported="vulkan">
                <require>
                    <enum value="25" name="VK_KHR_SURFACE_SPEC_VERSION"/>
                    <enum value="&quot;VK_KHR_surface&quot;" name="VK_KHR_SURFACE_EXTENSION_NAME"/>
                </require>
            </extension>
        </extensions>
        """
    )

    assert registry.constants["VK_KHR_SURFACE_SPEC_VERSION"].value == 25
    assert registry.constants["VK_KHR_SURFACE_EXTENSION_NAME"].value == b"VK_KHR_surface"


def test_enum_references_in_require_blocks_do_not_redefine(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <enums name="API Constants">
            <enum type="uint32_t" value="16" name="VK_UUID_SIZE"/>
        </enums>
        <feature api="vulkan" name="VK_VERSION_1_0" number="1.0">
            <require>
                <enum name="VK_UUID_SIZE"/>
            </require>
        </feature>
        """
    )

    assert list(registry.constants) == ["VK_UUID_SIZE"]
    assert registry.groups["VK_VERSION_1_0"].constants == ("VK_UUID_SIZE",)


# ===--- Commands ---=== #


def test_commands_keep_signature_and_aliases_copy_it(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        VK_RESULT_XML
        + """
        <commands>
            <command>
                <proto><type>VkResult</type> <name>vkDoThing</name></proto>
                <param><type>uint32_t</type> <name>count</name></param>
                <param>const <type>char</type>* <name>pName</name></param>
            </command>
            <command name="vkDoThingKHR" alias="vkDoThing"/>
        </commands>
        """
    )

    command = registry.commands["vkDoThing"]
    assert command.returns == Member("", "VkResult")
    assert command.params == (
        Member("count", "uint32_t"),
        Member("pName", "char", pointer_depth=1, is_const=True),
    )
    alias = registry.commands["vkDoThingKHR"]
    assert alias.alias == "vkDoThing"
    assert alias.params == command.params
    assert alias.returns == command.returns
    assert list(registry.commands) == ["vkDoThing", "vkDoThingKHR"]


def test_command_alias_to_unknown_command_is_malformed(
    make_registry: Callable[..., Registry],
) -> None:
    with pytest.raises(MalformedRegistry) as exc_info:
        make_registry('<commands><command name="vkA" alias="vkMissing"/></commands>')

    assert exc_info.value.element == "vkA"
    assert exc_info.value.location == "registry/commands/command[1][@name='vkA']"


# ===--- Feature groups ---=== #


def test_feature_groups_record_requirements_and_metadata(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        """
        <platforms>
            <platform name="xlib" protect="VK_USE_PLATFORM_XLIB_KHR"/>
        </platforms>
        <types>
            <type category="struct" name="S">
                <member><type>uint32_t</type> <name>x</name></member>
            </type>
        </types>
        <commands>
            <command>
                <proto><type>void</type> <name>vkA</name></proto>
            </command>
        </commands>
        <feature api="vulkan" name="VK_VERSION_1_1" number="1.1" depends="VK_VERSION_1_0">
            <require>
                <type name="S"/>
                <command name="vkA"/>
            </require>
        </feature>
        <extensions>
            <extension name="VK_KHR_xlib_surface" number="5" type="instance" author="KHR"
                       platform="xlib" supported="vulkan" requires="VK_KHR_surface"
                       requiresCore="1.1" promotedto="VK_VERSION_1_2">
                <require extension="VK_KHR_other" feature="VK_VERSION_1_2">
                    <command name="vkA"/>
                </require>
            </extension>
        </extensions>
        """
    )

    feature = registry.groups["VK_VERSION_1_1"]
    assert feature.kind == GROUP_FEATURE
    assert feature.types == ("S",)
    assert feature.commands == ("vkA",)
    assert feature.depends == "VK_VERSION_1_0"

    extension = registry.groups["VK_KHR_xlib_surface"]
    assert extension.kind == GROUP_EXTENSION
    assert extension.platform == "xlib"
    assert extension.author == "KHR"
    assert extension.ext_type == "instance"
    assert extension.promoted_to == "VK_VERSION_1_2"
    assert extension.depends == "VK_VERSION_1_1+VK_KHR_surface"
    assert extension.requirements[0].depends == "VK_VERSION_1_2+VK_KHR_other"
    assert registry.platforms["xlib"].protect == "VK_USE_PLATFORM_XLIB_KHR"


# ===--- Registry version ---=== #


def test_extract_registry_version_combines_feature_and_header(
    make_registry_root: Callable[[str], ET.Element],
) -> None:
    root = make_registry_root(
        """
        <types>
            <type api="vulkan" category="define">// Version of this file
#define <name>VK_HEADER_VERSION</name> 343</type>
        </types>
        <feature api="vulkan" name="VK_VERSION_1_0" number="1.0"/>
        <feature api="vulkan" name="VK_VERSION_1_3" number="1.3"/>
        <feature api="vulkansc" name="VKSC_VERSION_1_0" number="1.9"/>
        """
    )

    assert extract_registry_version(root) == "1.3.343"


def test_extract_registry_version_without_header_or_features(
    make_registry_root: Callable[[str], ET.Element],
) -> None:
    assert (
        extract_registry_version(
            make_registry_root('<feature api="vulkan" name="VK_VERSION_1_2" number="1.2"/>')
        )
        == "1.2"
    )
    assert extract_registry_version(make_registry_root("")) == "unknown"


def test_registry_version_override_wins(
    make_registry: Callable[..., Registry],
) -> None:
    registry = make_registry(
        '<feature api="vulkan" name="VK_VERSION_1_0" number="1.0"/>',
        registry_version="1.0.999",
    )

    assert registry.version == "1.0.999"
    assert registry.api == "vulkan"


# ===--- Malformed documents ---=== #


@pytest.mark.parametrize(
    ("inner", "element", "location", "reason"),
    [
        (
            "<bogus/>",
            "bogus",
            "registry/bogus[1]",
            "unknown element",
        ),
        (
            """<types>
                <type category="struct" name="S"><member><type>uint32_t</type> <name>x</name></member></type>
                <type category="struct" name="S"><member><type>uint32_t</type> <name>x</name></member></type>
            </types>""",
            "S",
            "registry/types/type[2]",
            "duplicate type definition",
        ),
        (
            """<types>
                <type category="struct" name="S">
                    <member><type>uint32_t</type> <name>x</name></member>
                    <member><type>uint32_t</type> <name>x</name></member>
                </type>
            </types>""",
            "member 'x' of S",
            "registry/types/type[1][@name='S']/member[2]",
            "duplicate member",
        ),
        (
            """<types>
                <type category="struct" name="S">
                    <member><type>VkMissing</type> <name>missing</name></member>
                </type>
            </types>""",
            "member 'missing' of S",
            "registry/types/type[1][@name='S']",
            "unresolvable type reference 'VkMissing'",
        ),
        (
            """<types>
                <type category="struct" name="S">
                    <member><type>char</type> <name>name</name>[<enum>VK_MAX_NAME</enum>]</member>
                </type>
            </types>""",
            "member 'name' of S",
            "registry/types/type[1][@name='S']",
            "unresolvable array size 'VK_MAX_NAME'",
        ),
        (
            '<types><type category="mystery" name="Q"/></types>',
            "Q",
            "registry/types/type[1][@name='Q']",
            "unknown type category 'mystery'",
        ),
        (
            '<types><type category="struct" name="Empty"/></types>',
            "Empty",
            "registry/types/type[1][@name='Empty']",
            "struct has no members",
        ),
        (
            """<commands>
                <command><proto><type>void</type> <name>vkA</name></proto></command>
                <command><proto><type>void</type> <name>vkA</name></proto></command>
            </commands>""",
            "vkA",
            "registry/commands/command[2][@name='vkA']",
            "duplicate command definition",
        ),
        (
            """<feature api="vulkan" name="VK_VERSION_1_0" number="1.0">
                <require><command name="vkMissing"/></require>
            </feature>""",
            "VK_VERSION_1_0",
            "registry/feature[1][@name='VK_VERSION_1_0']",
            "unresolvable command reference 'vkMissing'",
        ),
        (
            '<enums name="API Constants"><enum name="VK_NOTHING"/></enums>',
            "VK_NOTHING",
            "registry/enums[1][@name='API Constants']/enum[1][@name='VK_NOTHING']",
            "enum has no value",
        ),
    ],
    ids=[
        "unknown-element",
        "duplicate-type",
        "duplicate-member",
        "dangling-member-type",
        "dangling-array-size",
        "unknown-category",
        "empty-struct",
        "duplicate-command",
        "dangling-command-ref",
        "valueless-enum",
    ],
)
def test_malformed_registry_names_element_and_location(
    make_registry: Callable[..., Registry],
    inner: str,
    element: str,
    location: str,
    reason: str,
) -> None:
    with pytest.raises(MalformedRegistry) as exc_info:
        make_registry(inner)

    err = exc_info.value
    assert err.element == element
    assert err.location == location
    assert err.reason == reason
    assert err.code == "MALFORMED_REGISTRY"


def test_parse_registry_requires_registry_root() -> None:
    with pytest.raises(MalformedRegistry) as exc_info:
        parse_registry(ET.fromstring("<notregistry/>"))

    assert "root element must be <registry>" in str(exc_info.value)


def test_load_registry_reports_parse_errors_with_position(tmp_path: Path) -> None:
    vk_xml = tmp_path / "vk.xml"
    vk_xml.write_text("<registry>\n  <types>\n</registry>\n", encoding="utf-8")

    with pytest.raises(MalformedRegistry) as exc_info:
        load_registry(vk_xml)

    assert exc_info.value.element == "document"
    assert exc_info.value.location.startswith(f"{vk_xml}:3:")
    assert exc_info.value.reason == "XML is not well-formed"


def test_load_registry_reads_a_document(tmp_path: Path, scenario_xml: str) -> None:
    vk_xml = tmp_path / "vk.xml"
    vk_xml.write_text(f"<registry>{scenario_xml}</registry>", encoding="utf-8")

    registry = load_registry(vk_xml)

    assert list(registry.commands) == ["C", "D"]
    assert list(registry.groups) == ["core-1.0", "ext-X"]
    assert registry.version == "1.0"
