from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from capture_control_mcp.pipeline.capture_pipeline import CapturePipeline
from capture_control_mcp.pipeline.executor import CommandRunner, SubprocessRunner

from .audit import AuditLog
from .config import ControlConfig
from .coordinator import Coordinator
from .dispatcher import Dispatcher
from .errors import CaptureControlError
from .registry import AgentRegistry
from .store import CaptureStore

logger = logging.getLogger(__name__)


class CaptureControlMCPServer:
    """
    MCP control server for the capture fleet.

    Responsibilities:
      Own the agent registry, capture store and audit log
      Wire dispatcher and pipeline into the coordinator
      Expose coordinator operations as MCP tools

    Coordinator errors are returned as {"ok": false, "error": kind, ...}
    instead of failing the tool call.
    """

    def __init__(
        self,
        config: Optional[ControlConfig] = None,
        runner: Optional[CommandRunner] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ControlConfig()
        self.store = CaptureStore(self.config.data_dir)
        self.audit = AuditLog(str(self.store.audit_path))
        self.registry = AgentRegistry()

        dispatcher = Dispatcher(
            agent_url_template=self.config.agent_url_template,
            timeout_seconds=self.config.agent_timeout_seconds,
            transport=transport,
            log=self._log,
        )
        pipeline = CapturePipeline(
            store=self.store,
            runner=runner or SubprocessRunner(default_timeout_s=self.config.tool_timeout_seconds),
            mergecap_path=self.config.mergecap_path,
            tshark_path=self.config.tshark_path,
            tool_timeout_s=self.config.tool_timeout_seconds,
            log=self._log,
            audit=self.audit.append,
        )
        self.coordinator = Coordinator(
            registry=self.registry,
            dispatcher=dispatcher,
            pipeline=pipeline,
            grace_seconds=self.config.grace_seconds,
            log=self._log,
            audit=self.audit.append,
        )

        self.mcp = FastMCP("capture_control_mcp", host=self.config.host, port=self.config.port)
        self._register_tools()
        self._register_routes()

    def _log(self, msg: str) -> None:
        logger.info(msg)

    def _register_tools(self) -> None:
        coord = self.coordinator

        @self.mcp.tool()
        def register_agent(identity: str) -> Dict[str, Any]:
            """Register a capture agent by identity, usually its hostname."""
            identity = (identity or "").strip()
            if not identity:
                return {"ok": False, "error": "InvalidArgument", "message": "identity is empty"}
            return coord.register(identity)

        @self.mcp.tool()
        def list_agents() -> List[str]:
            return coord.registry.list()

        @self.mcp.tool()
        async def start_capture() -> Dict[str, Any]:
            """Clear the previous round and send start to every agent."""
            try:
                return await coord.start()
            except CaptureControlError as e:
                return e.to_dict()

        @self.mcp.tool()
        async def stop_capture() -> Dict[str, Any]:
            """Send stop to every agent, then merge, decode and filter the captures."""
            try:
                return await coord.stop()
            except CaptureControlError as e:
                return e.to_dict()

        @self.mcp.tool()
        async def submit_config(config: Dict[str, Any]) -> Dict[str, Any]:
            """
            Replace the filter config and re-filter the merged capture if present.

            Fields: ip, port, protocol, sourceIp, destinationIp, sourcePort,
            destinationPort, packetSizeMin, packetSizeMax, timeRange (start/end),
            tcpFlags, payloadContent, macAddress. Values are comma separated.
            """
            return await coord.submit_config(config)

        @self.mcp.tool()
        async def reset_config() -> Dict[str, Any]:
            try:
                return await coord.reset()
            except CaptureControlError as e:
                return e.to_dict()

        @self.mcp.tool()
        def get_config() -> Dict[str, Any]:
            try:
                return {"ok": True, "config": coord.current_config()}
            except CaptureControlError as e:
                return e.to_dict()

        @self.mcp.tool()
        def capture_status() -> Dict[str, Any]:
            try:
                return coord.status()
            except CaptureControlError as e:
                return e.to_dict()

        @self.mcp.tool()
        def health_check() -> Dict[str, Any]:
            return {"reachable": True}

    def _register_routes(self) -> None:
        """
        Plain HTTP routes for capture agents, which do not speak MCP.
        Served next to the MCP endpoint on the http transports.
        """
        coord = self.coordinator

        @self.mcp.custom_route("/server-name/{identity}", methods=["GET"])
        async def agent_register(request: Request) -> JSONResponse:
            identity = request.path_params["identity"].strip()
            if not identity:
                return JSONResponse(
                    {"ok": False, "error": "InvalidArgument", "message": "identity is empty"}, status_code=400
                )
            return JSONResponse(coord.register(identity))

        @self.mcp.custom_route("/test", methods=["GET"])
        async def reachability(request: Request) -> JSONResponse:
            return JSONResponse({"reachable": True})

    def run(self) -> None:
        self.store.ensure_root()
        self._log(f"capture control server on {self.config.host}:{self.config.port} via {self.config.transport}")
        self.mcp.run(transport=self.config.transport)
