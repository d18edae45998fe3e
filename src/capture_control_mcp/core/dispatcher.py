from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

import httpx

from .errors import NoAgentsRegistered
from .models import FAILED, SUCCESS, AgentOutcome

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Fans start and stop signals out to every registered agent.

    Behavior:
      One GET per agent, all issued concurrently.
      The broadcast returns only after every call has settled.
      A failing agent is reported as a failed outcome, never retried,
      and never cancels the calls to other agents.

    agent_url_template
      Base URL for an agent, "{agent}" is replaced by its identity.
      The agent side exposes GET /start and GET /stop.

    transport
      Optional httpx transport. Tests pass httpx.MockTransport here.
    """

    def __init__(
        self,
        agent_url_template: str = "http://{agent}:3000",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.agent_url_template = agent_url_template
        self.timeout_seconds = float(timeout_seconds)
        self._transport = transport
        self._log = log or logger.info

    def agent_url(self, agent: str, action: str) -> str:
        base = self.agent_url_template.format(agent=agent).rstrip("/")
        return f"{base}/{action}"

    async def broadcast_start(self, agents: List[str]) -> List[AgentOutcome]:
        return await self._broadcast(agents, "start")

    async def broadcast_stop(self, agents: List[str]) -> List[AgentOutcome]:
        return await self._broadcast(agents, "stop")

    async def _broadcast(self, agents: List[str], action: str) -> List[AgentOutcome]:
        if not agents:
            raise NoAgentsRegistered(f"no agents registered to {action}")

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            # gather keeps input order, so outcomes line up with registry order
            results = await asyncio.gather(*(self._signal(client, a, action) for a in agents))

        ok = sum(1 for r in results if r.ok)
        self._log(f"{action} signal sent to {len(results)} agents, {ok} succeeded")
        return list(results)

    async def _signal(self, client: httpx.AsyncClient, agent: str, action: str) -> AgentOutcome:
        try:
            url = self.agent_url(agent, action)
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            msg = f"agent returned {e.response.status_code}"
            logger.error("Failed to send %s signal to agent %s: %s", action, agent, msg)
            return AgentOutcome(agent=agent, status=FAILED, error=msg)
        except Exception as e:
            logger.error("Failed to send %s signal to agent %s: %s", action, agent, e)
            return AgentOutcome(agent=agent, status=FAILED, error=str(e) or type(e).__name__)

        logger.info("%s signal sent to agent %s, response %s", action, agent, response.status_code)
        return AgentOutcome(agent=agent, status=SUCCESS)
