"""Tool protocol, built-in tools and the tool executor."""

from __future__ import annotations

import asyncio
import logging
import operator
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
import jsonschema

from .config import TOOL_TIMEOUT_SECONDS
from .errors import ErrorCode, ToolExecutionFailed, ToolInvalidArguments, ToolUnknown
from .models import ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


class BaseTool(ABC):
    """Base class for orchestrator tools."""

    #: Gated tools only run after the user approves the invocation.
    requires_permission: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for parameters."""
        ...

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> ToolResult:
        ...

    def to_def(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            requires_permission=self.requires_permission,
        )


# ---------------------------------------------------------------------------
# get_time
# ---------------------------------------------------------------------------


class GetTimeTool(BaseTool):
    """Returns the current time as an ISO string (UTC unless a timezone is given)."""

    @property
    def name(self) -> str:
        return "get_time"

    @property
    def description(self) -> str:
        return "Get the current date and time in ISO format. Optionally pass an IANA timezone such as 'Europe/Paris'."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "timezone": {"type": "string", "description": "IANA timezone name (default UTC)"},
            },
            "required": [],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        tz_name = (params.get("timezone") or "").strip()
        if not tz_name:
            return ToolResult.ok(datetime.now(timezone.utc).isoformat())
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ToolInvalidArguments(f"Unknown timezone: {tz_name}") from e
        return ToolResult.ok(datetime.now(tz).isoformat(), timezone=tz_name)


# ---------------------------------------------------------------------------
# calculator
# ---------------------------------------------------------------------------

_OPERATORS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CalculatorTool(BaseTool):
    """Basic arithmetic on two operands."""

    @property
    def name(self) -> str:
        return "calculator"

    @property
    def description(self) -> str:
        return "Apply an arithmetic operator (+, -, *, /) to two numbers a and b."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "a": {"type": "number", "description": "Left operand"},
                "b": {"type": "number", "description": "Right operand"},
                "op": {"type": "string", "enum": sorted(_OPERATORS), "description": "Operator"},
            },
            "required": ["a", "b", "op"],
        }

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        a, b, op = params["a"], params["b"], params["op"]
        if op == "/" and b == 0:
            raise ToolExecutionFailed("Division by zero")
        return ToolResult.ok(_format_number(_OPERATORS[op](a, b)))


# ---------------------------------------------------------------------------
# web_search (gated)
# ---------------------------------------------------------------------------

DUCKDUCKGO_URL = "https://api.duckduckgo.com/"


class WebSearchTool(BaseTool):
    """Searches the web through the DuckDuckGo Instant Answer API. Requires approval."""

    requires_permission = True

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._client = client
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web for a query and return short result snippets. The user must approve each search."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "description": "Search query"},
                "k": {"type": "integer", "minimum": 1, "maximum": 10, "description": "Max number of results (default 5)"},
            },
            "required": ["query"],
        }

    async def _fetch(self, query: str) -> dict[str, Any]:
        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
        if self._client is not None:
            resp = await self._client.get(DUCKDUCKGO_URL, params=params)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(DUCKDUCKGO_URL, params=params)
        resp.raise_for_status()
        return resp.json()

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        query = params["query"].strip()
        if not query:
            raise ToolInvalidArguments("query is required")
        k = params.get("k") or 5
        try:
            data = await self._fetch(query)
        except httpx.HTTPError as e:
            raise ToolExecutionFailed(f"Search request failed: {e}") from e

        lines: list[str] = []
        if data.get("AbstractText"):
            source = data.get("AbstractURL") or ""
            lines.append(f"- {data['AbstractText']} {source}".rstrip())
        for topic in data.get("RelatedTopics") or []:
            # Grouped topics nest their entries under "Topics"
            for item in topic.get("Topics", [topic]):
                text = item.get("Text")
                if text:
                    lines.append(f"- {text} {item.get('FirstURL', '')}".rstrip())
        if not lines:
            return ToolResult.ok("No results found.")
        return ToolResult.ok("\n".join(lines[:k]), results=min(len(lines), k))


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class ToolExecutor:
    """Immutable catalog of tools plus validated, failure-isolated execution."""

    def __init__(self, tools: Iterable[BaseTool], timeout: float | None = TOOL_TIMEOUT_SECONDS):
        by_name: dict[str, BaseTool] = {}
        for tool in tools:
            if tool.name in by_name:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            jsonschema.Draft202012Validator.check_schema(tool.parameters)
            by_name[tool.name] = tool
        self._tools = MappingProxyType(by_name)
        self._definitions = tuple(t.to_def() for t in by_name.values())
        self._timeout = timeout

    def catalog(self) -> tuple[ToolDefinition, ...]:
        return self._definitions

    def get(self, name: str) -> ToolDefinition | None:
        for definition in self._definitions:
            if definition.name == name:
                return definition
        return None

    def _resolve(self, name: str, arguments: Any) -> BaseTool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolUnknown(f"Unknown tool: {name}")
        if not isinstance(arguments, dict):
            raise ToolInvalidArguments("Arguments must be an object")
        try:
            jsonschema.validate(arguments, tool.parameters)
        except jsonschema.ValidationError as e:
            raise ToolInvalidArguments(e.message) from e
        return tool

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run a tool. Never raises for tool-side problems; returns a failed ToolResult instead."""
        try:
            tool = self._resolve(name, arguments)
            result = await asyncio.wait_for(tool.execute(arguments), timeout=self._timeout)
        except (ToolUnknown, ToolInvalidArguments, ToolExecutionFailed) as e:
            return ToolResult.failure(e.code, e.message)
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", name, self._timeout)
            return ToolResult.failure(ErrorCode.TOOL_EXECUTION_FAILED, f"Tool {name} timed out")
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return ToolResult.failure(ErrorCode.TOOL_EXECUTION_FAILED, str(e) or type(e).__name__)

        if not result.success and result.error_code is None:
            result.error_code = ErrorCode.TOOL_EXECUTION_FAILED
        return result


def get_default_tools() -> list[BaseTool]:
    """Return the default tool list."""
    return [
        GetTimeTool(),
        CalculatorTool(),
        WebSearchTool(),
    ]
