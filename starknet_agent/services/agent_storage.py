"""
Agent instance storage.

Keeps the running agents of a process keyed by id, backed by the agent
repository. New agents are checked against the configured limits and
given a unique name within their owner's agents.
"""
import logging
import re
import uuid
from typing import Any, Callable, Dict, List, Optional

from starknet_agent.domains.errors import ServerError
from starknet_agent.domains.records import AgentConfigRecord
from starknet_agent.interfaces.repositories.agent import AgentRepository
from starknet_agent.interfaces.services.agent import AgentService

logger = logging.getLogger(__name__)

AgentFactory = Callable[[AgentConfigRecord], AgentService]


def next_available_name(base_name: str, existing: List[str]) -> str:
    """Return ``base_name`` or the next ``base_name-N`` not in ``existing``."""
    if base_name not in existing:
        return base_name
    pattern = re.compile(f"^{re.escape(base_name)}-(\\d+)$")
    indices = [int(m.group(1)) for m in (pattern.match(n) for n in existing) if m]
    return f"{base_name}-{max(indices, default=0) + 1}"


class AgentStorage:
    """Owns agent records and their live instances."""

    def __init__(
        self,
        repository: AgentRepository,
        agent_factory: AgentFactory,
        guards: Optional[Dict[str, Any]] = None,
    ):
        self.repository = repository
        self.agent_factory = agent_factory
        guards = guards or {}
        self.max_agents: Optional[int] = guards.get("max_agents")
        self.max_agents_per_user: Optional[int] = guards.get("max_agents_per_user")
        self._instances: Dict[str, AgentService] = {}
        self._records: Dict[str, AgentConfigRecord] = {}

    def initialize(self) -> int:
        """Instantiate every stored agent. Returns how many were loaded."""
        loaded = 0
        for record in self.repository.get_all_agents():
            try:
                self._start(record)
                loaded += 1
            except Exception as e:
                logger.error(f"Failed to load agent {record.id} ({record.name}): {e}")
        logger.info(f"Loaded {loaded} agent(s) from storage")
        return loaded

    def _start(self, record: AgentConfigRecord) -> AgentService:
        instance = self.agent_factory(record)
        self._instances[record.id] = instance
        self._records[record.id] = record
        return instance

    def _check_limits(self, user_id: str) -> None:
        if self.max_agents is not None and self.repository.count_agents() >= self.max_agents:
            logger.warning(f"Agent limit of {self.max_agents} reached")
            raise ServerError("E04TA100")
        if (
            self.max_agents_per_user is not None
            and self.repository.count_agents_for_user(user_id) >= self.max_agents_per_user
        ):
            logger.warning(
                f"User {user_id} reached the limit of {self.max_agents_per_user} agents"
            )
            raise ServerError("E04TA100")

    def add_agent(self, user_id: str, config: Dict[str, Any]) -> AgentConfigRecord:
        """Store a new agent for ``user_id`` and start it.

        Args:
            user_id: Owner of the agent
            config: Raw agent JSON configuration; must contain a name

        Returns:
            The stored record, whose name may carry a numeric suffix

        Raises:
            ServerError: E04TA100 when a limit is reached or the config is invalid,
                E02TA120 when the agent cannot be stored
        """
        base_name = config.get("name") if isinstance(config, dict) else None
        if not base_name or not str(base_name).strip():
            raise ServerError("E04TA100")
        self._check_limits(user_id)

        name = next_available_name(
            base_name, self.repository.find_names_like(user_id, base_name)
        )
        if name != base_name:
            logger.info(f"Agent name {base_name} already taken; using {name}")

        record = AgentConfigRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            config={**config, "name": name},
        )
        try:
            instance = self._start(record)
        except Exception as e:
            logger.error(f"Failed to create agent {name}: {e}")
            raise ServerError("E04TA100", e)

        try:
            self.repository.save_agent(record)
        except Exception as e:
            self._dispose(record.id, instance)
            logger.error(f"Failed to save agent {name}: {e}")
            raise ServerError("E02TA120", e)

        logger.info(f"Agent {name} ({record.id}) created for user {user_id}")
        return record

    def get_agent(self, agent_id: str, user_id: Optional[str] = None) -> AgentService:
        """Get a running agent, optionally checking its owner."""
        instance = self._instances.get(agent_id)
        record = self._records.get(agent_id)
        if instance is None or record is None:
            raise ServerError("E01TA400")
        if user_id is not None and record.user_id != user_id:
            raise ServerError("E01TA400")
        return instance

    def get_record(self, agent_id: str) -> Optional[AgentConfigRecord]:
        return self._records.get(agent_id)

    def get_agents(self, user_id: Optional[str] = None) -> List[AgentConfigRecord]:
        return [
            record
            for record in self._records.values()
            if user_id is None or record.user_id == user_id
        ]

    def _dispose(self, agent_id: str, instance: Optional[AgentService]) -> None:
        if instance is not None:
            try:
                instance.stop()
            except Exception as e:
                logger.error(f"Error stopping agent {agent_id}: {e}")
        self._instances.pop(agent_id, None)
        self._records.pop(agent_id, None)

    def delete_agent(self, agent_id: str, user_id: Optional[str] = None) -> None:
        """Stop and delete an agent with its conversations."""
        instance = self.get_agent(agent_id, user_id)
        if not self.repository.delete_agent(agent_id):
            raise ServerError("E02TA130")
        self._dispose(agent_id, instance)
        logger.info(f"Agent {agent_id} deleted")

    def stop_all(self) -> None:
        for agent_id, instance in list(self._instances.items()):
            self._dispose(agent_id, instance)
