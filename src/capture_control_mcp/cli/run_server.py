from __future__ import annotations
import logging
from capture_control_mcp.core.config import ControlConfig
from capture_control_mcp.core.server import CaptureControlMCPServer


def main() -> None:
    """
    Load settings from CAPTURE_* environment variables.

    Example:
      export CAPTURE_DATA_DIR=/data
      export CAPTURE_AGENT_URL_TEMPLATE='http://{agent}:3000'
      export CAPTURE_GRACE_SECONDS=5
      python -m capture_control_mcp.cli.run_server
    """
    config = ControlConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    server = CaptureControlMCPServer(config=config)
    server.run()


if __name__ == "__main__":
    main()
