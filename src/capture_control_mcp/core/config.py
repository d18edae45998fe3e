from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class ControlConfig:
    """
    Runtime settings for the coordinator.

    Defaults match the shared volume layout the capture agents write to.
    Override at construction time, or load from CAPTURE_* environment
    variables with from_env.
    """

    data_dir: str = "/data"
    agent_url_template: str = "http://{agent}:3000"
    agent_timeout_seconds: float = 10.0
    grace_seconds: float = 5.0
    tool_timeout_seconds: float = 120.0
    mergecap_path: str = "mergecap"
    tshark_path: str = "tshark"
    host: str = "0.0.0.0"
    port: int = 3000
    transport: str = "streamable-http"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ControlConfig":
        e = os.environ if env is None else env
        d = cls()
        return cls(
            data_dir=e.get("CAPTURE_DATA_DIR", d.data_dir),
            agent_url_template=e.get("CAPTURE_AGENT_URL_TEMPLATE", d.agent_url_template),
            agent_timeout_seconds=float(e.get("CAPTURE_AGENT_TIMEOUT", d.agent_timeout_seconds)),
            grace_seconds=float(e.get("CAPTURE_GRACE_SECONDS", d.grace_seconds)),
            tool_timeout_seconds=float(e.get("CAPTURE_TOOL_TIMEOUT", d.tool_timeout_seconds)),
            mergecap_path=e.get("MERGECAP_PATH", d.mergecap_path),
            tshark_path=e.get("TSHARK_PATH", d.tshark_path),
            host=e.get("CAPTURE_CONTROL_HOST", d.host),
            port=int(e.get("CAPTURE_CONTROL_PORT", d.port)),
            transport=e.get("CAPTURE_CONTROL_TRANSPORT", d.transport),
            log_level=e.get("CAPTURE_LOG_LEVEL", d.log_level).upper(),
        )
