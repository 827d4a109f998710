"""
Tool registry and dispatcher.

Each tool is a handler callable whose signature doubles as its argument
schema, so the catalogue advertised upstream and the code that runs cannot
drift apart.
"""

import inspect
import logging
import types
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .errors import ToolExecutionFailure, ToolRegistryError, UnknownTool

logger = logging.getLogger(__name__)

_JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean"}


class ToolContext:
    """What a tool handler may touch while running."""

    def __init__(self, bus, message_id: Optional[str] = None, conversation=None, preferences=None):
        self.bus = bus
        self.message_id = message_id
        self.conversation = conversation
        self.preferences = preferences


class ToolDescriptor:
    """A named tool: its description, parameter schema and handler."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: Dict[str, Any],
        handler: Callable,
        done_phrase: Optional[str] = None,
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.handler = handler
        self.done_phrase = done_phrase or f"run {name.replace('_', ' ')}"

    @property
    def schema(self) -> Dict[str, Any]:
        """Chat-completions tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _unwrap_optional(annotation) -> Tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1 and len(get_args(annotation)) == 2:
            return args[0], True
    return annotation, False


def annotation_to_json_schema(annotation) -> Tuple[Dict[str, Any], bool]:
    """
    Convert a type hint to a JSON schema fragment.

    Returns:
        The schema and whether the hint was Optional.
    """
    description = None
    # Optional may wrap Annotated or sit inside it
    annotation, optional = _unwrap_optional(annotation)
    if get_origin(annotation) is Annotated:
        annotation, *metadata = get_args(annotation)
        description = next((m for m in metadata if isinstance(m, str)), None)
    annotation, inner_optional = _unwrap_optional(annotation)
    optional = optional or inner_optional

    if get_origin(annotation) is Literal:
        values = list(get_args(annotation))
        value_type = type(values[0]) if values else str
        schema = {"type": _JSON_TYPES.get(value_type, "string"), "enum": values}
    else:
        schema = {"type": _JSON_TYPES.get(annotation, "string")}

    if description:
        schema["description"] = description
    return schema, optional


def callable_to_tool_schema(callable_func: Callable) -> Dict[str, Any]:
    """
    Build the JSON schema for a tool handler's parameters.

    The first parameter receives the :class:`ToolContext` and is not advertised.

    Args:
        callable_func: The handler to describe

    Returns:
        An ``object`` JSON schema
    """
    sig = inspect.signature(callable_func)
    type_hints = get_type_hints(callable_func, include_extras=True)

    parameters = {"type": "object", "properties": {}, "required": []}

    params = list(sig.parameters.items())
    for param_name, param in params[1:]:
        param_schema, optional = annotation_to_json_schema(type_hints.get(param_name, str))
        param_schema.setdefault("description", f"The {param_name} parameter")
        parameters["properties"][param_name] = param_schema

        if param.default is inspect.Parameter.empty and not optional:
            parameters["required"].append(param_name)

    return parameters


def validate_schema(name: str, parameters: Any) -> None:
    """Raise ToolRegistryError unless ``parameters`` is a well-formed object schema."""
    if not isinstance(parameters, dict) or parameters.get("type") != "object":
        raise ToolRegistryError(f"Tool '{name}': parameters must be an object schema")

    properties = parameters.get("properties")
    if not isinstance(properties, dict):
        raise ToolRegistryError(f"Tool '{name}': properties must be a mapping")

    required = parameters.get("required", [])
    if not isinstance(required, list):
        raise ToolRegistryError(f"Tool '{name}': required must be a list")
    missing = [r for r in required if r not in properties]
    if missing:
        raise ToolRegistryError(f"Tool '{name}': required names not in properties: {missing}")

    for prop_name, prop in properties.items():
        if not isinstance(prop, dict) or "type" not in prop:
            raise ToolRegistryError(f"Tool '{name}': property '{prop_name}' has no type")
        if "enum" in prop and (not isinstance(prop["enum"], list) or not prop["enum"]):
            raise ToolRegistryError(f"Tool '{name}': property '{prop_name}' has an empty enum")


class ToolRegistry:
    """Registry for managing tools and their schemas."""

    def __init__(self):
        self.tools: Dict[str, ToolDescriptor] = {}
        self.frozen = False

    def register(
        self,
        handler: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
        done_phrase: Optional[str] = None,
    ) -> ToolDescriptor:
        """
        Register a handler and generate its schema from the signature.

        Args:
            handler: ``handler(context, **arguments)``, sync or async
            name: Optional name override (defaults to the handler name)
            description: Optional description (defaults to the docstring)
            done_phrase: Past-tense phrase used when acknowledging the action
        """
        if self.frozen:
            raise ToolRegistryError("Tool registry is frozen")

        tool_name = name or handler.__name__
        if tool_name in self.tools:
            raise ToolRegistryError(f"Tool '{tool_name}' is already registered")

        if description is None:
            doc = inspect.getdoc(handler)
            description = doc.strip() if doc else f"Execute {tool_name}"

        descriptor = ToolDescriptor(
            tool_name,
            description,
            callable_to_tool_schema(handler),
            handler,
            done_phrase,
        )
        self.tools[tool_name] = descriptor
        return descriptor

    def validate(self) -> None:
        for name, descriptor in self.tools.items():
            if not name:
                raise ToolRegistryError("Tool names must be non-empty")
            validate_schema(name, descriptor.parameters)

    def freeze(self) -> "ToolRegistry":
        """Validate the catalogue and refuse further registrations."""
        self.validate()
        self.frozen = True
        return self

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self.tools.get(name)

    def get_schemas(self) -> List[Dict[str, Any]]:
        """Get all tool schemas for the chat-completions API."""
        return [descriptor.schema for descriptor in self.tools.values()]

    def get_tool_names(self) -> List[str]:
        return list(self.tools.keys())

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)


def _matches_type(value: Any, json_type: str) -> bool:
    if json_type == "string":
        return isinstance(value, str)
    if json_type == "boolean":
        return isinstance(value, bool)
    if json_type == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if json_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return True


def validate_arguments(descriptor: ToolDescriptor, arguments: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
    """Check ``arguments`` against the descriptor schema.

    Returns:
        The arguments restricted to known parameters, and an error message or None.
    """
    properties = descriptor.parameters.get("properties", {})
    required = descriptor.parameters.get("required", [])

    missing = [r for r in required if arguments.get(r) is None]
    if missing:
        return {}, f"Missing required argument(s): {', '.join(missing)}"

    clean = {}
    for key, value in arguments.items():
        prop = properties.get(key)
        if prop is None:
            logger.warning(f"Ignoring unexpected argument '{key}' for tool {descriptor.name}")
            continue
        if value is None:
            continue
        if not _matches_type(value, prop.get("type", "string")):
            return {}, f"Argument '{key}' must be of type {prop.get('type')}"
        if "enum" in prop and value not in prop["enum"]:
            allowed = ", ".join(str(v) for v in prop["enum"])
            return {}, f"Argument '{key}' must be one of: {allowed}"
        clean[key] = value
    return clean, None


def failure(error: str, **extra) -> Dict[str, Any]:
    return {"success": False, "error": error, **extra}


class ToolDispatcher:
    """Maps a resolved ``(name, arguments)`` pair to its handler.

    Never raises for tool-level problems; they come back as failure results.
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def dispatch(self, name: str, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        descriptor = self.registry.get(name)
        if descriptor is None:
            logger.info(f"TOOL ERROR: {UnknownTool.kind} - {name}")
            return failure(f"Unknown tool: {name}")

        args, error = validate_arguments(descriptor, arguments)
        if error:
            logger.info(f"TOOL ARGUMENT ERROR: {name} - {error}")
            return failure(error)

        try:
            if inspect.iscoroutinefunction(descriptor.handler):
                result = await descriptor.handler(context, **args)
            else:
                result = descriptor.handler(context, **args)
        except Exception as e:
            logger.exception(f"TOOL ERROR: {ToolExecutionFailure.kind} - {name}")
            return failure(f"Error: {e}")

        if result is None:
            return {"success": True}
        if not isinstance(result, dict):
            return {"success": True, "result": result}
        return result
