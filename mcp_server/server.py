"""contextkeeper MCP server: exposes archived context to MCP clients."""

from __future__ import annotations

import json
import logging
import os
import sys

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from contextkeeper.client import ContextKeeper
from contextkeeper.config import KeeperConfig
from contextkeeper.core.types import (
    AutoLoadStrategy,
    DateRange,
    ExtractedContext,
    Scope,
    SearchResult,
    SortBy,
)
from contextkeeper.exceptions import KeeperError
from mcp_server.tools import TOOL_DEFINITIONS

log = logging.getLogger(__name__)

app = Server("contextkeeper")
_config = KeeperConfig()
_keeper: ContextKeeper | None = None

NO_CONTEXT_MESSAGE = (
    "No relevant context found for your query. Use broader search terms, "
    "remove the query to see recent contexts, or try scope 'global' instead of 'project'."
)
NO_RESULTS_MESSAGE = (
    "No results found for your search query. Try fewer or broader terms, "
    "or drop the file pattern and date range filters."
)
NO_PATTERNS_MESSAGE = (
    "No recurring patterns found. Patterns appear once a command, edit or error "
    "repeats within a session; try min_frequency 1 or type 'all'."
)


def _kp() -> ContextKeeper:
    global _keeper
    if _keeper is None:
        _keeper = ContextKeeper(config=_config, project_path=os.getcwd())
    return _keeper


# ------------------------------------------------------------------
# Arguments
# ------------------------------------------------------------------


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FetchArgs(_Args):
    query: str | None = None
    limit: int = Field(default=5, ge=1, le=100)
    scope: Scope = Scope.project
    min_relevance: float = Field(
        default=0.3, ge=0.0, le=1.0, validation_alias=AliasChoices("min_relevance", "minRelevance")
    )
    session_id: str | None = Field(default=None, validation_alias=AliasChoices("session_id", "sessionId"))


class SearchArgs(_Args):
    query: str = Field(min_length=1)
    file_pattern: str | None = Field(default=None, validation_alias=AliasChoices("file_pattern", "filePattern"))
    date_range: DateRange | None = Field(default=None, validation_alias=AliasChoices("date_range", "dateRange"))
    project_path: str | None = Field(default=None, validation_alias=AliasChoices("project_path", "projectPath"))
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: SortBy = Field(default=SortBy.relevance, validation_alias=AliasChoices("sort_by", "sortBy"))


class PatternArgs(_Args):
    type: str = "all"
    min_frequency: int = Field(default=2, ge=1, validation_alias=AliasChoices("min_frequency", "minFrequency"))
    limit: int = Field(default=10, ge=1, le=50)


class RecentArgs(_Args):
    limit: int = Field(default=10, ge=1, le=100)


class AutoLoadArgs(_Args):
    strategy: AutoLoadStrategy | None = None
    max_size_kb: float | None = Field(default=None, gt=0)
    priority_keywords: list[str] | None = None


# ------------------------------------------------------------------
# Tools
# ------------------------------------------------------------------


@app.list_tools()
async def list_tools() -> list[Tool]:
    return [Tool(**td) for td in TOOL_DEFINITIONS]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    try:
        result = _dispatch(name, arguments or {})
    except Exception as exc:
        log.exception("Tool %s failed", name)
        result = {"success": False, "error": str(exc)}
    return [TextContent(type="text", text=json.dumps(result, default=str))]


def _dispatch(name: str, args: dict) -> dict:
    try:
        return _run(name, args)
    except ValidationError as exc:
        log.error("Invalid arguments for %s: %s", name, exc)
        return {"success": False, "error": f"Invalid arguments: {exc.errors()[0]['msg']}"}
    except (KeeperError, ValueError) as exc:
        log.error("Tool %s failed: %s", name, exc)
        return {"success": False, "error": str(exc)}


def _run(name: str, args: dict) -> dict:
    kp = _kp()

    if name == "fetch_context":
        a = FetchArgs.model_validate(args)
        contexts = kp.fetch_context(
            a.query,
            limit=a.limit,
            scope=a.scope,
            min_relevance=a.min_relevance,
            session_id=a.session_id,
        )
        out = {
            "success": True,
            "contexts": [_context_dict(c) for c in contexts],
            "count": len(contexts),
        }
        if not contexts:
            out["message"] = NO_CONTEXT_MESSAGE
        return out

    if name == "search_archive":
        a = SearchArgs.model_validate(args)
        results = kp.search_archive(
            a.query,
            file_pattern=a.file_pattern,
            date_range=a.date_range,
            project_path=a.project_path,
            limit=a.limit,
            sort_by=a.sort_by,
        )
        out = {
            "success": True,
            "results": [_result_dict(r) for r in results],
            "count": len(results),
        }
        if not results:
            out["message"] = NO_RESULTS_MESSAGE
        return out

    if name == "get_patterns":
        a = PatternArgs.model_validate(args)
        patterns = kp.get_patterns(a.type, min_frequency=a.min_frequency, limit=a.limit)
        out = {
            "success": True,
            "patterns": [p.model_dump(mode="json") for p in patterns],
            "count": len(patterns),
        }
        if not patterns:
            out["message"] = NO_PATTERNS_MESSAGE
        return out

    if name == "get_recent_contexts":
        a = RecentArgs.model_validate(args)
        contexts = kp.recent(a.limit)
        return {
            "success": True,
            "contexts": [_context_dict(c) for c in contexts],
            "count": len(contexts),
        }

    if name == "auto_load_context":
        a = AutoLoadArgs.model_validate(args)
        overrides = a.model_dump(exclude_none=True)
        settings = _config.auto_load.model_copy(update=overrides) if overrides else None
        loaded = kp.auto_load(settings)
        return {"success": True, **loaded.model_dump(mode="json")}

    return {"success": False, "error": f"Unknown tool: {name}"}


def _context_dict(context: ExtractedContext) -> dict:
    return context.model_dump(mode="json")


def _result_dict(result: SearchResult) -> dict:
    ctx = result.context
    return {
        "session_id": ctx.session_id,
        "project_path": ctx.project_path,
        "timestamp": ctx.timestamp.isoformat(),
        "relevance": round(result.relevance, 4),
        "snippet": result.snippet,
        "matches": [m.model_dump(mode="json") for m in result.matches],
    }


# ------------------------------------------------------------------
# Resources
# ------------------------------------------------------------------


@app.list_resources()
async def list_resources() -> list[Resource]:
    return [
        Resource(
            uri="contextkeeper://project/auto-load",
            name="Auto-loaded project context",
            mimeType="text/markdown",
        ),
        Resource(
            uri="contextkeeper://project/patterns",
            name="Recurring patterns in this project",
            mimeType="application/json",
        ),
    ]


@app.read_resource()
async def read_resource(uri: str) -> str:
    # contextkeeper://project/{what}
    what = str(uri).replace("contextkeeper://", "").split("/")[-1]
    kp = _kp()
    if what == "patterns":
        patterns = kp.get_patterns(project_path=os.getcwd())
        return json.dumps([p.model_dump(mode="json") for p in patterns])
    return kp.auto_load().content


# ------------------------------------------------------------------
# Main
# ------------------------------------------------------------------


async def main():
    global _config
    # stdout carries the MCP transport
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("CONTEXTKEEPER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _config = KeeperConfig.load()
    log.info("contextkeeper MCP server starting (db: %s)", _config.db_path)
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run() -> None:
    import asyncio

    asyncio.run(main())


if __name__ == "__main__":
    run()
