"""
Sift MCP Server

Exposes the knowledge library to MCP clients over stdio. The server acts
for a single owner, fixed at launch (--owner or SIFT_OWNER_ID).

Tool Return Format:
{
    "ok": bool,
    "results": Any,          # Present if ok is True
    "error": str             # Present if ok is False
}
"""

import argparse
import asyncio
import logging
import os
import signal
from typing import Annotated, Any, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .common.config import load_config, validate_config
from .common.errors import SiftError
from .common.schemas import render_display_text
from .distribution import DistributionOption
from .retriever import SearchMode
from .service import KnowledgePipeline

logger = logging.getLogger("sift.mcp")


def _error(e: Exception) -> Dict[str, Any]:
    return {"ok": False, "error": str(e)}


class SiftMCPServer:
    """
    MCP tool server over a KnowledgePipeline.

    Args:
        pipeline: Wired pipeline
        owner_id: The owner every tool call acts for
        server_name: Advertised MCP server name
    """

    def __init__(self, pipeline: KnowledgePipeline, owner_id: str, server_name: str = "sift") -> None:
        self.pipeline = pipeline
        self.owner_id = owner_id
        self.mcp = FastMCP(name=server_name)

        async def _call(fn, *args, **kwargs) -> Dict[str, Any]:
            """Run a blocking pipeline call off the event loop and wrap the result."""
            try:
                return {"ok": True, "results": await asyncio.to_thread(fn, *args, **kwargs)}
            except (SiftError, ValueError) as e:
                logger.warning("%s failed: %s", getattr(fn, "__name__", "tool"), e)
                return _error(e)

        # ---------- Capture ---------- #
        @self.mcp.tool(
            name="capture",
            description="Capture a URL, video link or document pointer into the knowledge library for later processing.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_capture(
            ref: Annotated[str, Field(description="URL or document pointer to capture")],
            notes: Annotated[str, Field(description="why this is worth keeping")] = "",
            title: Annotated[Optional[str], Field(description="optional title")] = None,
        ) -> Dict[str, Any]:
            return await _call(self.pipeline.capture_reference, self.owner_id, ref, notes, title=title)

        # ---------- Process pending ---------- #
        @self.mcp.tool(
            name="process_pending",
            description="Fetch, extract and index the oldest pending captures.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_process_pending(
            limit: Annotated[int, Field(description="maximum records to process", ge=1, le=100)] = 10,
        ) -> Dict[str, Any]:
            response = await _call(self.pipeline.process_pending_batch, self.owner_id, limit)
            if response["ok"]:
                response["results"] = response["results"].to_dict()
            return response

        # ---------- Ask ---------- #
        @self.mcp.tool(
            name="ask",
            description=(
                "Answer a question from the knowledge library with numbered citations. "
                "Citation [n] refers to sources[n-1]. Use mode 'deep' for broad questions."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_ask(
            question: Annotated[str, Field(description="natural-language question")],
            mode: Annotated[str, Field(description="'standard' or 'deep'")] = "standard",
        ) -> Dict[str, Any]:
            try:
                search_mode = SearchMode(mode)
            except ValueError as e:
                return _error(e)
            response = await _call(self.pipeline.ask_question, self.owner_id, question, search_mode)
            if response["ok"]:
                response["results"] = response["results"].to_dict()
            return response

        # ---------- Search ---------- #
        @self.mcp.tool(
            name="search",
            description="Hybrid keyword + semantic search over the library, without answer synthesis.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_search(
            query: Annotated[str, Field(description="search text")],
            limit: Annotated[int, Field(description="maximum results", ge=1, le=50)] = 10,
            content_types: Annotated[Optional[List[str]], Field(description="restrict to these content types")] = None,
        ) -> Dict[str, Any]:
            response = await _call(
                self.pipeline.search_semantic, self.owner_id, query, limit=limit, content_types=content_types,
            )
            if response["ok"]:
                response["results"] = [c.to_dict() for c in response["results"]]
            return response

        # ---------- Quotes ---------- #
        @self.mcp.tool(
            name="find_quotes",
            description="Find quotable excerpts on a topic, optionally tuned for 'board', 'linkedin', 'pitch' or 'workshop'.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_find_quotes(
            query: Annotated[str, Field(description="topic")],
            context: Annotated[Optional[str], Field(description="audience hint")] = None,
            count: Annotated[int, Field(description="number of quotes", ge=1, le=50)] = 5,
        ) -> Dict[str, Any]:
            return await _call(self.pipeline.find_quotes, self.owner_id, query, context=context, limit=count)

        # ---------- Record detail ---------- #
        @self.mcp.tool(
            name="get_record",
            description="Show a record's summary, findings, relevance note, quotables and tags as Markdown.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_get_record(
            record_id: Annotated[str, Field(description="record id")],
        ) -> Dict[str, Any]:
            response = await _call(self.pipeline.get_record, self.owner_id, record_id)
            if response["ok"]:
                response["results"] = render_display_text(response["results"])
            return response

        # ---------- Share ---------- #
        @self.mcp.tool(
            name="share_to_team",
            description="Render a record as a team message and post it to the team channel.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def tool_share_to_team(
            record_id: Annotated[str, Field(description="record id")],
            option: Annotated[str, Field(description="distribution option, e.g. 'summary_only'")] = "summary_only",
        ) -> Dict[str, Any]:
            def share():
                message, result = self.pipeline.share_record(self.owner_id, record_id, DistributionOption(option))
                return {"delivery": result.to_dict(), "violations": message.violations}

            response = await _call(share)
            if response["ok"] and not response["results"]["delivery"]["ok"]:
                return {"ok": False, "error": response["results"]["delivery"]["error"]}
            return response

        # ---------- Newsletter ---------- #
        @self.mcp.tool(
            name="draft_newsletter",
            description="Draft a newsletter section (markdown) from records queued for the newsletter, or from the given record ids.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_draft_newsletter(
            record_ids: Annotated[Optional[List[str]], Field(description="record ids; omit to use the newsletter queue")] = None,
        ) -> Dict[str, Any]:
            response = await _call(self.pipeline.draft_newsletter, self.owner_id, record_ids)
            if response["ok"]:
                response["results"] = response["results"].markdown
            return response

        # ---------- Stats ---------- #
        @self.mcp.tool(
            name="stats",
            description="Counts of records by status, distribution queues and images.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_stats() -> Dict[str, Any]:
            return await _call(self.pipeline.get_stats, self.owner_id)

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Run the Sift MCP server (stdio).")
    parser.add_argument(
        "--owner",
        default=os.getenv("SIFT_OWNER_ID", ""),
        help="Owner id the server acts for.",
    )
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "sift"),
        help="Advertised MCP server name.",
    )
    args = parser.parse_args()

    # stdout is the MCP channel; logs go to stderr
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    if not args.owner:
        parser.error("an owner id is required (--owner or SIFT_OWNER_ID)")

    config = load_config()
    validate_config(config)
    app = SiftMCPServer(KnowledgePipeline.from_config(config), args.owner, args.server_name)

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
