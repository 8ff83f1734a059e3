# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for surgical verification.

This module exposes the verification service as MCP tools with ZERO business
logic. All analysis is delegated to VerificationService.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from surgical_verify.config import Config
from surgical_verify.service import VerificationService

logger = logging.getLogger(__name__)

SERVER_NAME = "surgical-verify"


class SurgicalVerifyMCPServer:
    """MCP Protocol Layer for surgical verification.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate MCP requests to service calls
    - Format service responses as MCP tool results
    - Handle MCP server lifecycle (startup, shutdown)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        service: Optional[VerificationService] = None,
        project_root: Optional[Path] = None,
    ):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from default location.
            service: Service layer instance. If None, creates default service.
            project_root: Project to analyze. If None, uses cwd.
        """
        if config is None:
            config = Config()
        self.config = config

        if service is None:
            service = VerificationService(
                config=config,
                project_root=str(project_root) if project_root else None,
            )
        self.service = service

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("SurgicalVerifyMCPServer initialized")

    def _register_tools(self) -> None:
        """Register MCP tools with the server.

        Registers:
        - analyze_impact: Direct dependents of a file
        - decide_verification_scope: NARROW or FULL decision for a changed file
        - get_dependency_graph: Export of the dependency graph
        """

        @self.mcp.tool()
        async def analyze_impact(
            target_file: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Calculate which files import the target file.

            Use this before editing a shared component or utility to see what
            might break.

            Args:
                target_file: Absolute or project-relative path of the file to analyze
                ctx: MCP context for logging

            Returns:
                Dictionary with target, dependents and count.
            """
            await ctx.info(f"Analyzing impact of {target_file}")
            try:
                result = self.service.analyze_impact(target_file)
            except FileNotFoundError:
                await ctx.error(f"File not found: {target_file}")
                raise
            except Exception as e:
                await ctx.error(f"Impact analysis failed for {target_file}: {e}")
                raise

            await ctx.info(f"{result['count']} direct dependents of {target_file}")
            return result

        @self.mcp.tool()
        async def decide_verification_scope(
            target_file: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Decide whether a change needs NARROW or FULL verification.

            Args:
                target_file: Absolute or project-relative path of the changed file
                ctx: MCP context for logging

            Returns:
                Decision with target, mode, files, count, reason and partitions.
            """
            await ctx.info(f"Deciding verification scope for {target_file}")
            decision = self.service.decide(target_file)
            await ctx.info(f"{decision.mode} verification ({decision.reason})")
            return decision.to_dict()

        @self.mcp.tool()
        async def get_dependency_graph(
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Export the dependency graph of the scanned roots.

            Args:
                ctx: MCP context for logging

            Returns:
                Dictionary with metadata, files and most_connected_files.
            """
            await ctx.info("Exporting dependency graph")
            try:
                response = self.service.get_dependency_graph()
            except Exception as e:
                await ctx.error(f"Error exporting dependency graph: {e}")
                raise

            await ctx.info(f"Graph exported: {len(response['files'])} files")
            return response

        logger.info(
            "MCP tools registered: analyze_impact, decide_verification_scope, get_dependency_graph"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: Transport type to use. Options:
                - "stdio": Standard input/output (default)
                - "streamable-http": HTTP transport
                - "sse": Server-sent events transport
        """
        logger.info(f"Starting MCP server with {transport} transport")
        try:
            self.mcp.run(transport=transport)  # type: ignore[arg-type]
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources."""
        logger.info("Shutting down MCP server")
        self.service.shutdown()
