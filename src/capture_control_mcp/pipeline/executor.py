from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from capture_control_mcp.core.errors import ToolInvocationFailed


@dataclass
class CommandResult:
    args: Sequence[str]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    """
    Runs one external tool from an argument vector.

    Arguments are never joined into a shell string.
    Implementations raise ToolInvocationFailed only when the tool could not
    run to completion (missing binary, timeout). A non-zero exit is returned
    in CommandResult and judged by the caller.
    """

    def run(self, args: Sequence[str], timeout_s: Optional[float] = None) -> CommandResult:
        ...


class SubprocessRunner:
    def __init__(self, default_timeout_s: float = 120.0):
        self.default_timeout_s = float(default_timeout_s)

    def run(self, args: Sequence[str], timeout_s: Optional[float] = None) -> CommandResult:
        argv = [str(a) for a in args]
        timeout = self.default_timeout_s if timeout_s is None else float(timeout_s)
        try:
            p = subprocess.run(
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolInvocationFailed(f"{argv[0]} not found", {"tool": argv[0]}) from e
        except subprocess.TimeoutExpired as e:
            raise ToolInvocationFailed(
                f"{argv[0]} timed out after {timeout:g}s", {"tool": argv[0], "timeout_s": timeout}
            ) from e
        except OSError as e:
            raise ToolInvocationFailed(f"{argv[0]} could not be started: {e}", {"tool": argv[0]}) from e
        return CommandResult(args=argv, returncode=p.returncode, stdout=p.stdout or "", stderr=p.stderr or "")
