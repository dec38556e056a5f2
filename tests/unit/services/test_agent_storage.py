import mongomock
import pytest
from unittest.mock import MagicMock

from starknet_agent.adapters.mongodb_adapter import MongoDBAdapter
from starknet_agent.domains.errors import ServerError
from starknet_agent.domains.records import AgentConfigRecord
from starknet_agent.repositories.agent import MongoAgentRepository
from starknet_agent.services.agent_storage import AgentStorage, next_available_name


@pytest.fixture
def repository():
    adapter = MongoDBAdapter(
        connection_string="mongodb://localhost:27017/", database_name="test_db"
    )
    adapter.client = mongomock.MongoClient()
    adapter.db = adapter.client["test_db"]
    return MongoAgentRepository(adapter)


@pytest.fixture
def factory():
    return MagicMock(side_effect=lambda record: MagicMock(name=f"agent-{record.name}"))


@pytest.fixture
def storage(repository, factory):
    return AgentStorage(repository, factory)


CONFIG = {"name": "Artemis", "interval": 10, "chatId": "chat", "mode": "interactive"}


@pytest.mark.parametrize(
    "existing,expected",
    [
        ([], "bot"),
        (["bot"], "bot-1"),
        (["bot", "bot-1", "bot-4"], "bot-5"),
        (["bot", "bot-x", "bots-9"], "bot-1"),
        (["bot-2"], "bot"),
    ],
)
def test_next_available_name(existing, expected):
    assert next_available_name("bot", existing) == expected


def test_add_agent_stores_and_starts(storage, repository, factory):
    record = storage.add_agent("user-1", CONFIG)

    assert record.name == "Artemis"
    assert record.config["name"] == "Artemis"
    assert repository.get_agent(record.id).user_id == "user-1"
    factory.assert_called_once_with(record)
    assert storage.get_agent(record.id, "user-1") is not None


def test_duplicate_names_get_suffix(storage):
    first = storage.add_agent("user-1", CONFIG)
    second = storage.add_agent("user-1", CONFIG)
    other_user = storage.add_agent("user-2", CONFIG)

    assert first.name == "Artemis"
    assert second.name == "Artemis-1"
    assert second.config["name"] == "Artemis-1"
    assert other_user.name == "Artemis"
    assert [r.name for r in storage.get_agents("user-1")] == ["Artemis", "Artemis-1"]


def test_missing_name(storage):
    with pytest.raises(ServerError) as exc_info:
        storage.add_agent("user-1", {"interval": 10})
    assert exc_info.value.error_code == "E04TA100"


def test_limits(repository, factory):
    storage = AgentStorage(repository, factory, guards={"max_agents_per_user": 1, "max_agents": 2})
    storage.add_agent("user-1", CONFIG)
    with pytest.raises(ServerError):
        storage.add_agent("user-1", CONFIG)
    storage.add_agent("user-2", CONFIG)
    with pytest.raises(ServerError) as exc_info:
        storage.add_agent("user-3", CONFIG)
    assert exc_info.value.status_code == 400


def test_factory_failure_does_not_store(storage, repository, factory):
    factory.side_effect = ValueError("bad config")
    with pytest.raises(ServerError) as exc_info:
        storage.add_agent("user-1", CONFIG)
    assert exc_info.value.error_code == "E04TA100"
    assert repository.count_agents() == 0
    assert storage.get_agents() == []


def test_save_failure_disposes_instance(storage, repository):
    repository.save_agent = MagicMock(side_effect=RuntimeError("mongo down"))
    with pytest.raises(ServerError) as exc_info:
        storage.add_agent("user-1", CONFIG)
    assert exc_info.value.error_code == "E02TA120"
    assert storage.get_agents() == []


def test_get_agent_checks_owner(storage):
    record = storage.add_agent("user-1", CONFIG)
    with pytest.raises(ServerError) as exc_info:
        storage.get_agent(record.id, "user-2")
    assert exc_info.value.status_code == 404
    with pytest.raises(ServerError):
        storage.get_agent("missing")


def test_delete_agent(storage, repository):
    record = storage.add_agent("user-1", CONFIG)
    instance = storage.get_agent(record.id)

    storage.delete_agent(record.id, "user-1")

    instance.stop.assert_called_once()
    assert repository.get_agent(record.id) is None
    assert storage.get_record(record.id) is None


def test_delete_failure(storage, repository):
    record = storage.add_agent("user-1", CONFIG)
    repository.delete_agent = MagicMock(return_value=False)
    with pytest.raises(ServerError) as exc_info:
        storage.delete_agent(record.id)
    assert exc_info.value.error_code == "E02TA130"
    assert storage.get_record(record.id) is not None


def test_initialize_loads_stored_agents(repository, factory):
    for name in ("a", "b", "broken"):
        repository.save_agent(
            AgentConfigRecord(id=f"id-{name}", user_id="u", name=name, config={"name": name})
        )

    def build(record):
        if record.name == "broken":
            raise ValueError("invalid")
        return MagicMock()

    factory.side_effect = build
    storage = AgentStorage(repository, factory)

    assert storage.initialize() == 2
    assert sorted(r.name for r in storage.get_agents()) == ["a", "b"]


def test_stop_all(storage):
    record = storage.add_agent("user-1", CONFIG)
    instance = storage.get_agent(record.id)
    storage.stop_all()
    instance.stop.assert_called_once()
    assert storage.get_agents() == []
