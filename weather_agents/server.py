"""
Weather Agents MCP Server.

Transport: stdio.

Expected MCP Tool Return Format:
{
    "ok": bool,
    "results": Any,          # Present if ok is True
    "error": str            # Present if ok is False
}
"""

import argparse
import logging
import os
import signal
import sys
from typing import Annotated, Any, Dict, Optional

from pydantic import Field
from dotenv import load_dotenv
load_dotenv()

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

from .common.config import load_config
from .common.fact_store import FactStore, FactStoreError, JsonFileFactStore
from .orchestrator import WeatherAgentOrchestrator

logger = logging.getLogger("weather.server")


class WeatherMCPServerApp:
    """
    MCP server exposing the weather question-answering pipeline.
    """

    def __init__(
        self,
        orchestrator: WeatherAgentOrchestrator,
        fact_store: FactStore,
        mcp_server_name: str = "weather_agents",
        default_location: Optional[str] = None,
    ) -> None:
        """
        Args:
            orchestrator: Answers questions; never raises
            fact_store: Store the orchestrator reads, used for stats
            mcp_server_name: Advertised MCP server name
            default_location: Location used when neither the question nor the caller names one
        """
        self.orchestrator = orchestrator
        self.fact_store = fact_store
        self.default_location = default_location
        self.mcp = FastMCP(name=mcp_server_name)

        # ---------- MCP Tools: Ask ---------- #
        @self.mcp.tool(
            name="ask_weather",
            description=(
                "Answer a weather question (Korean or English) from the user's stored "
                "weather facts, consulting live data when stored facts are not enough. "
                "Returns the answer with confidence, quality scores, sources and the "
                "decision log of the pipeline."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_ask_weather(
            question: Annotated[str, Field(description="free-form weather question")],
            owner: Annotated[str, Field(description="user id whose facts are searched")],
            default_location: Annotated[Optional[str], Field(description="location used when the question names none")] = None,
        ) -> Dict[str, Any]:
            """
            MCP tool to answer one weather question.

            Args:
                question (str): The question to answer.
                owner (str): Opaque user id; only this owner's facts are searched.
                default_location (Optional[str]): Fallback location.

            Returns:
                Dict[str, Any]: {"ok": True, "results": <orchestration result>}
            """
            if not question or not question.strip():
                raise ToolError("question must not be empty")
            if not owner or not owner.strip():
                raise ToolError("owner must not be empty")

            result = await self.orchestrator.answer_with_timeout(
                question.strip(),
                owner.strip(),
                default_location=default_location or self.default_location,
            )
            return {"ok": True, "results": result.to_dict()}

        # ---------- MCP Tools: Fact Store Stats ---------- #
        @self.mcp.tool(
            name="fact_store_stats",
            description="Count stored weather facts by content type and location.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_fact_store_stats(
            owner: Annotated[Optional[str], Field(description="restrict counts to this user id")] = None,
        ) -> Dict[str, Any]:
            """
            Returns fact store totals, optionally for one owner.
            """
            try:
                return {"ok": True, "results": self.fact_store.stats(owner or None)}
            except FactStoreError as e:
                return {"ok": False, "error": str(e)}

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Weather Agents MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "weather_agents"),
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--fact-store-path",
        default=os.getenv("WEATHER_FACT_STORE_PATH", None),
        help="Path to the JSON fact store (defaults to the configured path).",
    )
    parser.add_argument(
        "--default-location",
        default=os.getenv("WEATHER_DEFAULT_LOCATION", None),
        help="Location used when a question names none.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("WEATHER_LOG_LEVEL", "INFO"),
        help="Logging level.",
    )
    args = parser.parse_args()

    # stdout carries the MCP protocol; logs go to stderr
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    config = load_config()
    if args.fact_store_path:
        config.fact_store.path = args.fact_store_path
    if args.default_location:
        config.orchestrator.default_location = args.default_location

    fact_store = JsonFileFactStore(config.fact_store.path)
    orchestrator = WeatherAgentOrchestrator.from_config(config, fact_store=fact_store)

    app = WeatherMCPServerApp(
        orchestrator=orchestrator,
        fact_store=fact_store,
        mcp_server_name=args.server_name,
        default_location=config.orchestrator.default_location,
    )

    def _handle_shutdown(signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    logger.info("Starting %s (fact store: %s)", args.server_name, fact_store.path)
    app.run()


if __name__ == "__main__":
    main()
