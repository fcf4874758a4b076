"""The five agents of the autonomous SRE team, in pipeline order."""

from __future__ import annotations

from sre_team.agents.base import AgentStage
from sre_team.agents.commander import CommanderAgent
from sre_team.agents.communicator import CommunicatorAgent
from sre_team.agents.engineer import EngineerAgent
from sre_team.agents.first_responder import FirstResponderAgent
from sre_team.agents.sentinel import SentinelAgent
from sre_team.models import AgentKind

AGENT_CLASSES: dict[AgentKind, type[AgentStage]] = {
    AgentKind.SENTINEL: SentinelAgent,
    AgentKind.FIRST_RESPONDER: FirstResponderAgent,
    AgentKind.COMMANDER: CommanderAgent,
    AgentKind.ENGINEER: EngineerAgent,
    AgentKind.COMMUNICATOR: CommunicatorAgent,
}

DEFAULT_TEMPLATES: dict[AgentKind, str] = {
    kind: cls.default_template for kind, cls in AGENT_CLASSES.items()
}
