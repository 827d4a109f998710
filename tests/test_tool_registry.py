from typing import Annotated, Literal, Optional

import pytest

from event_chat.errors import ToolRegistryError
from event_chat.tool_registry import (
    ToolRegistry,
    callable_to_tool_schema,
    validate_schema,
)
from event_chat.tools import build_default_registry

EXPECTED_TOOLS = [
    "toggle_sidebar",
    "clear_chat",
    "change_theme",
    "navigate_to_page",
    "open_split_view",
    "fill_form",
    "resize_sidebar",
]


def sample_tool(ctx, mode: Annotated[Literal["a", "b"], "Which mode"], count: int, note: Optional[str] = None):
    """Do a sample thing."""


class TestSchemaGeneration:
    def test_context_parameter_is_not_advertised(self):
        schema = callable_to_tool_schema(sample_tool)
        assert "ctx" not in schema["properties"]

    def test_literal_becomes_enum(self):
        schema = callable_to_tool_schema(sample_tool)
        assert schema["properties"]["mode"] == {
            "type": "string",
            "enum": ["a", "b"],
            "description": "Which mode",
        }

    def test_required_excludes_optional_parameters(self):
        schema = callable_to_tool_schema(sample_tool)
        assert schema["type"] == "object"
        assert schema["required"] == ["mode", "count"]
        assert schema["properties"]["count"]["type"] == "integer"
        assert schema["properties"]["note"]["type"] == "string"

    def test_default_description(self):
        schema = callable_to_tool_schema(sample_tool)
        assert schema["properties"]["count"]["description"] == "The count parameter"


class TestRegistry:
    def test_register_uses_docstring(self):
        registry = ToolRegistry()
        descriptor = registry.register(sample_tool)

        assert descriptor.name == "sample_tool"
        assert descriptor.description == "Do a sample thing."
        assert registry.has_tool("sample_tool")

    def test_name_and_description_override(self):
        registry = ToolRegistry()
        registry.register(sample_tool, name="other", description="Custom", done_phrase="did it")

        descriptor = registry.get("other")
        assert descriptor.description == "Custom"
        assert descriptor.done_phrase == "did it"
        assert registry.get("sample_tool") is None

    def test_duplicate_names_rejected(self):
        registry = ToolRegistry()
        registry.register(sample_tool)
        with pytest.raises(ToolRegistryError, match="already registered"):
            registry.register(sample_tool)

    def test_frozen_registry_rejects_registration(self):
        registry = ToolRegistry().freeze()
        with pytest.raises(ToolRegistryError, match="frozen"):
            registry.register(sample_tool)

    def test_schemas_shape(self):
        registry = ToolRegistry()
        registry.register(sample_tool)

        [schema] = registry.get_schemas()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "sample_tool"
        assert schema["function"]["parameters"]["required"] == ["mode", "count"]


class TestValidateSchema:
    @pytest.mark.parametrize(
        "parameters",
        [
            None,
            {"type": "array"},
            {"type": "object", "properties": []},
            {"type": "object", "properties": {}, "required": "x"},
            {"type": "object", "properties": {}, "required": ["x"]},
            {"type": "object", "properties": {"x": {}}},
            {"type": "object", "properties": {"x": {"type": "string", "enum": []}}},
        ],
    )
    def test_malformed_schemas_rejected(self, parameters):
        with pytest.raises(ToolRegistryError):
            validate_schema("bad", parameters)

    def test_freeze_validates_catalogue(self):
        registry = ToolRegistry()
        descriptor = registry.register(sample_tool)
        descriptor.parameters["required"].append("missing")

        with pytest.raises(ToolRegistryError, match="missing"):
            registry.freeze()
        assert not registry.frozen


class TestDefaultCatalogue:
    def test_all_tools_registered_in_order(self):
        registry = build_default_registry()
        assert registry.get_tool_names() == EXPECTED_TOOLS
        assert registry.frozen

    def test_enums(self):
        registry = build_default_registry()

        def enum_of(tool, param):
            return registry.get(tool).parameters["properties"][param]["enum"]

        assert enum_of("toggle_sidebar", "action") == ["open", "close"]
        assert enum_of("change_theme", "theme") == ["light", "dark", "toggle"]
        assert enum_of("navigate_to_page", "page") == ["chat", "settings", "form"]
        assert enum_of("open_split_view", "page") == ["settings", "form", "none"]
        assert enum_of("resize_sidebar", "size") == ["small", "medium", "large"]

    def test_required_parameters(self):
        registry = build_default_registry()

        assert registry.get("clear_chat").parameters["required"] == ["confirm"]
        assert registry.get("clear_chat").parameters["properties"]["confirm"]["type"] == "boolean"
        assert registry.get("fill_form").parameters["required"] == []
        assert set(registry.get("fill_form").parameters["properties"]) == {"name", "email", "message"}

    def test_descriptions_come_from_handlers(self):
        registry = build_default_registry()
        assert registry.get("toggle_sidebar").description.startswith("Open or close the sidebar menu.")
