"""Tool registry exposed to the model in OpenAI function-call format."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Coroutine, Iterable

import pydantic
from pydantic import BaseModel, ConfigDict

from ..errors import ClientExecutedTool, SchemaViolation, UnknownTool

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[Any], Coroutine[Any, Any, dict[str, Any]]]


class ToolName(str, Enum):
    LIST_FILES = "listFiles"
    READ_FILE = "readFile"
    CREATE_FILE = "createFile"
    CREATE_FOLDER = "createFolder"
    RUN_COMMAND = "runCommand"
    EDIT_FILE_WITH_PATCH = "editFileWithPatch"


class ToolInput(BaseModel):
    """Base for tool inputs.

    The schema sent to the model forbids extra keys, but extra keys in a call
    are dropped rather than rejected.
    """

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        json_schema_extra={"additionalProperties": False},
    )


@dataclass(frozen=True)
class ToolSpec:
    """A tool declaration. Tools without an executor are run by the caller."""

    name: ToolName
    description: str
    input_model: type[BaseModel]
    output_schema: dict[str, Any] | None = None
    executor: ToolExecutor | None = None

    @property
    def client_executed(self) -> bool:
        return self.executor is None

    def parameters(self) -> dict[str, Any]:
        return _strip_titles(self.input_model.model_json_schema(by_alias=True))


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {k: _strip_titles(v) for k, v in schema.items() if k != "title"}
    if isinstance(schema, list):
        return [_strip_titles(v) for v in schema]
    return schema


def _error_details(exc: pydantic.ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
        for err in exc.errors(include_url=False)
    ]


class ToolRegistry:
    """Immutable, ordered set of tool declarations.

    Every ToolName member must be declared exactly once, so adding a tool is
    a change to the enum and its declaration together.
    """

    def __init__(self, specs: Iterable[ToolSpec]) -> None:
        ordered: dict[ToolName, ToolSpec] = {}
        for spec in specs:
            if spec.name in ordered:
                raise ValueError(f"Duplicate tool declaration: {spec.name.value}")
            ordered[spec.name] = spec
        missing = [n.value for n in ToolName if n not in ordered]
        if missing:
            raise ValueError(f"Missing tool declarations: {', '.join(missing)}")
        self._specs = MappingProxyType(ordered)
        self._by_name = MappingProxyType({n.value: s for n, s in ordered.items()})

    def declarations(self) -> tuple[ToolSpec, ...]:
        return tuple(self._specs.values())

    def list_tools(self) -> list[str]:
        return [name.value for name in self._specs]

    def has_tool(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> ToolSpec:
        spec = self._by_name.get(name)
        if spec is None:
            raise UnknownTool(name)
        return spec

    def get_openai_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": spec.name.value,
                    "description": spec.description,
                    "parameters": spec.parameters(),
                },
            }
            for spec in self._specs.values()
        ]

    def validate_input(self, name: str, arguments: dict[str, Any]) -> BaseModel:
        spec = self.get(name)
        try:
            return spec.input_model.model_validate(arguments)
        except pydantic.ValidationError as e:
            raise SchemaViolation(name, _error_details(e)) from e

    async def dispatch(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate and run a server-side tool.

        Raises UnknownTool, SchemaViolation, or ClientExecutedTool for tools
        whose effect belongs to the caller's environment.
        """
        spec = self.get(name)
        tool_input = self.validate_input(name, arguments)
        if spec.executor is None:
            raise ClientExecutedTool(name)
        return await spec.executor(tool_input)


def create_default_registry() -> ToolRegistry:
    """Build the registry with all built-in tools."""
    from . import patch, workspace

    return ToolRegistry([*workspace.SPECS, patch.SPEC])
