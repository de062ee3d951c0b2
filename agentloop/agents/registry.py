from __future__ import annotations

from typing import Dict, Iterable, Iterator, List

from agentloop.agents.base import Agent
from agentloop.errors import TopologyError
from agentloop.schemas.messages import SENTINELS


class AgentRegistry:
    """Lookup table from routing id to agent."""

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: Dict[str, Agent] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: Agent) -> None:
        if not isinstance(agent, Agent):
            raise TopologyError(f"{agent!r} does not expose id, name and process()")
        if not agent.id:
            raise TopologyError(f"agent {agent.name!r} has an empty id")
        if agent.id in SENTINELS:
            raise TopologyError(f"agent id {agent.id!r} is reserved")
        if agent.id in self._agents:
            raise TopologyError(f"duplicate agent id {agent.id!r}")
        self._agents[agent.id] = agent

    def get(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def ids(self) -> List[str]:
        return list(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
