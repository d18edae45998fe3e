from __future__ import annotations

from typing import Dict, List


class AgentRegistry:
    """
    Holds registered capture agent identities.

    Important:
      Membership only grows. There is no unregister, agents that go away
      simply fail their start and stop calls.

    Identities are opaque strings, usually the agent container hostname.
    Iteration order is registration order.
    """

    def __init__(self):
        # dict keeps insertion order and gives O(1) membership
        self._agents: Dict[str, None] = {}

    def register(self, identity: str) -> bool:
        """
        Add identity if absent. True means it was newly added.
        Duplicate registration is a no-op.
        """
        if identity in self._agents:
            return False
        self._agents[identity] = None
        return True

    def list(self) -> List[str]:
        return list(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, identity: object) -> bool:
        return identity in self._agents
