"""SupportDesk MCP Server exposing the support pipeline as MCP tools.

This module implements the tool-provider process spawned by the protocol
bridge. Every tool maps onto one operation of the embedded pipeline, so the
web API gets identical results whether it calls the provider or falls back
to running the pipeline itself.

Tools:
- classify_intent: Intent category for a message
- search_similar: FAQ entries and past questions ranked together
- search_faq: FAQ-only ranking, no answer text and no logging
- ask_support: Full classify/retrieve/answer/judge run, logged with channel "mcp"
- get_metrics: Deflection and confidence statistics over the log

Resources:
- file:///supportdesk/faq.json and file:///supportdesk/logs.json (read-only)

The server speaks MCP over stdio; stdout is the protocol channel, so all
logging goes to stderr.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Annotated, Any, Dict, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from supportdesk.answer import AnswerComposer
from supportdesk.bridge import FAQ_RESOURCE_URI, LOGS_RESOURCE_URI
from supportdesk.config import SupportDeskConfig
from supportdesk.pipeline import SupportPipeline

logger = logging.getLogger("supportdesk-server")

# Create FastMCP server instance
mcp = FastMCP("SupportDeskServer")

REMOTE_CHANNEL = "mcp"


def build_pipeline(data_dir: Optional[Path] = None) -> SupportPipeline:
    """Create the pipeline served by this process.

    The provider always answers with the deterministic template; rephrasing
    through an LLM is left to the web process.
    """
    config = SupportDeskConfig()
    if data_dir is not None:
        config.data_dir = Path(data_dir)
    return SupportPipeline(config, composer=AnswerComposer(), channel=REMOTE_CHANNEL)


pipeline = build_pipeline()


@mcp.resource(
    FAQ_RESOURCE_URI,
    name="faq-data",
    description="FAQ knowledge base",
    mime_type="application/json",
)
def faq_data() -> str:
    return json.dumps(pipeline.knowledge.read_raw(), indent=2, ensure_ascii=False)


@mcp.resource(
    LOGS_RESOURCE_URI,
    name="logs-data",
    description="Question/answer logs",
    mime_type="application/json",
)
def logs_data() -> str:
    return json.dumps(pipeline.logs.read(), indent=2, ensure_ascii=False)


@mcp.tool()
def classify_intent(
    text: Annotated[str, Field(min_length=1, description="User message or question to classify")],
) -> Dict[str, Any]:
    """Classify the intent of a support question (password, VPN, procurement, email, or unknown)."""
    return pipeline.classify(text).to_json_dict()


@mcp.tool()
async def search_similar(
    query: Annotated[str, Field(min_length=1, description="Search query or question")],
    top_k: Annotated[int, Field(ge=1, le=30, description="Max results")] = 10,
) -> Dict[str, Any]:
    """Search FAQ entries and past questions together, ranked by match score.

    Each item carries ``source`` ("knowledge" or "history"). Scores are
    rounded to 3 decimals and items scoring 0 are omitted.
    """
    result = await pipeline.search_similar(query, top_k)
    return result.to_json_dict()


@mcp.tool()
async def search_faq(
    query: Annotated[str, Field(min_length=1, description="Search query")],
    top_k: Annotated[int, Field(ge=1, le=20, description="Max number of results")] = 5,
) -> Dict[str, Any]:
    """Search the FAQ and return ranked candidates without composing an answer or logging."""
    result = await pipeline.search_faq(query, top_k)
    return result.to_json_dict()


@mcp.tool()
async def ask_support(
    question: Annotated[str, Field(min_length=1, description="User support question")],
    top_k: Annotated[int, Field(ge=1, le=10, description="Number of retrieval candidates")] = 3,
) -> Dict[str, Any]:
    """Classify, retrieve, answer and judge a support question, then log it.

    Returns the same answer object as the web API: answer, intent,
    confidence, needsHuman, citations, similarItems and trace.
    """
    response = await pipeline.ask(question, top_k)
    return response.to_json_dict()


@mcp.tool()
async def get_metrics() -> Dict[str, Any]:
    """Return aggregate support metrics from the interaction log."""
    metrics = await pipeline.metrics()
    return metrics.to_json_dict()


# Main execution
async def main():
    """Main entry point for the SupportDesk MCP server.

    Parses command-line options, points the pipeline at the data directory
    and serves MCP over stdio until the client closes the streams.
    """
    import argparse

    global pipeline

    parser = argparse.ArgumentParser(description="SupportDesk MCP Server")
    parser.add_argument(
        "--data-dir",
        default=os.getenv("SUPPORTDESK_DATA_DIR", "data"),
        help="Directory containing faq.json and logs.json",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("MCP_LOG_LEVEL", "INFO"),
        help="Log level (default: MCP_LOG_LEVEL or INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pipeline = build_pipeline(Path(args.data_dir))
    logger.info(f"SupportDesk MCP server running on stdio (data: {pipeline.config.data_dir})")
    await mcp.run_stdio_async()


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
