"""
Factory for creating and wiring components of the Starknet Agent system.

This module handles the creation and dependency injection for the agent,
its tools and the file ingestion workers.
"""

import logging
from typing import Any, Dict, Optional

from redis.asyncio import Redis

# Service imports
from starknet_agent.services.agent import AgentService
from starknet_agent.services.agent_storage import AgentStorage
from starknet_agent.services.cache import RedisCacheService
from starknet_agent.services.chunking import ChunkingService
from starknet_agent.services.embeddings import EmbeddingsService
from starknet_agent.services.file_ingestion import FileIngestionWorkerService
from starknet_agent.services.file_validation import FileValidationService
from starknet_agent.services.job_processor import FileIngestionProcessor, JobProcessor
from starknet_agent.services.jobs import JobsMetadataService
from starknet_agent.services.mutex import RedisMutexService
from starknet_agent.services.queue import QueueManager
from starknet_agent.services.token_tracking import TokenTracker
from starknet_agent.services.vector_store import VectorStoreService
from starknet_agent.services.worker_manager import WorkerManager

# Repository imports
from starknet_agent.repositories.agent import MongoAgentRepository

# Adapter imports
from starknet_agent.adapters.mongodb_adapter import MongoDBAdapter
from starknet_agent.adapters.openai_adapter import OpenAIAdapter
from starknet_agent.adapters.pinecone_adapter import PineconeAdapter
from starknet_agent.adapters.redis_adapter import create_redis_client

# Domain and plugin imports
from starknet_agent.domains.agent import AgentConfig, load_agent_config
from starknet_agent.domains.jobs import RetryConfig
from starknet_agent.domains.records import AgentConfigRecord
from starknet_agent.plugins.manager import PluginManager
from starknet_agent.plugins.mcp import McpPlugin
from starknet_agent.plugins.rag import RAG_PLUGIN_NAME, RagPlugin
from starknet_agent.plugins.registry import ToolRegistry

# Setup logger for this module
logger = logging.getLogger(__name__)

RETRY_KEYS = ("max_retries", "retry_delay", "backoff_multiplier", "max_retry_delay")


class StarknetAgentFactory:
    """Factory for creating and wiring components of the Starknet Agent system."""

    @staticmethod
    def create_llm_provider(config: Dict[str, Any]) -> OpenAIAdapter:
        # OpenAI is the only supported LLM provider
        if "openai" not in config or "api_key" not in config["openai"]:
            raise ValueError("OpenAI API key is required in config.")

        openai_config = config["openai"]
        llm_model = openai_config.get("model")
        if llm_model:
            logger.info(f"Using OpenAI as LLM provider with model: {llm_model}")
        else:
            logger.info("Using OpenAI as LLM provider")

        logfire_api_key = None
        if "logfire" in config:
            if "api_key" not in config["logfire"]:
                raise ValueError("Pydantic Logfire API key is required.")
            logfire_api_key = config["logfire"]["api_key"]

        return OpenAIAdapter(
            api_key=openai_config["api_key"],
            model=llm_model,
            embedding_model=openai_config.get("embedding_model"),
            embedding_dimensions=openai_config.get("embedding_dimensions"),
            logfire_api_key=logfire_api_key,
        )

    @staticmethod
    def create_db_adapter(config: Dict[str, Any]) -> Optional[MongoDBAdapter]:
        if "mongo" not in config:
            return None
        if "connection_string" not in config["mongo"]:
            raise ValueError("MongoDB connection string is required.")
        if "database" not in config["mongo"]:
            raise ValueError("MongoDB database name is required.")
        return MongoDBAdapter(
            connection_string=config["mongo"]["connection_string"],
            database_name=config["mongo"]["database"],
        )

    @staticmethod
    def create_agent_config(config: Dict[str, Any]) -> AgentConfig:
        """Read the agent JSON config inline or from ``agent_config_path``."""
        if config.get("agent"):
            return AgentConfig.model_validate(config["agent"])
        if config.get("agent_config_path"):
            return load_agent_config(config["agent_config_path"])
        raise ValueError("Agent configuration is required in config.")

    @staticmethod
    def create_vector_store(
        config: Dict[str, Any], db_adapter: Optional[MongoDBAdapter] = None
    ) -> VectorStoreService:
        """Create the document vector store.

        Requires a ``pinecone`` section and a ``mongo`` section (or an adapter).
        """
        pinecone_config = config.get("pinecone")
        if not pinecone_config:
            raise ValueError("Pinecone configuration is required for the vector store.")
        db_adapter = db_adapter or StarknetAgentFactory.create_db_adapter(config)
        if db_adapter is None:
            raise ValueError("MongoDB configuration is required for the vector store.")

        dimensions = pinecone_config.get("embedding_dimensions") or config.get(
            "openai", {}
        ).get("embedding_dimensions", 3072)
        vector_provider = PineconeAdapter(
            api_key=pinecone_config.get("api_key"),
            index_name=pinecone_config.get("index_name"),
            embedding_dimensions=dimensions,
            cloud_provider=pinecone_config.get("cloud_provider", "aws"),
            region=pinecone_config.get("region", "us-east-1"),
            metric=pinecone_config.get("metric", "cosine"),
            create_index_if_not_exists=pinecone_config.get(
                "create_index_if_not_exists", True
            ),
        )
        return VectorStoreService(vector_provider, db_adapter)

    @staticmethod
    def create_embeddings_service(
        config: Dict[str, Any], llm_provider: Any
    ) -> EmbeddingsService:
        openai_config = config.get("openai", {})
        return EmbeddingsService(
            llm_provider,
            model=openai_config.get("embedding_model"),
            dimensions=openai_config.get("embedding_dimensions"),
        )

    @staticmethod
    def create_from_config(
        config: Dict[str, Any],
        llm_provider: Optional[Any] = None,
        vector_store: Optional[VectorStoreService] = None,
        db_adapter: Optional[MongoDBAdapter] = None,
        agent_config: Optional[AgentConfig] = None,
        agent_id: Optional[str] = None,
    ) -> AgentService:
        """Create an agent from configuration.

        Args:
            config: Configuration dictionary
            llm_provider: Existing LLM provider to reuse
            vector_store: Existing vector store to reuse for retrieval
            db_adapter: Existing MongoDB adapter to reuse
            agent_config: Agent JSON config overriding the one in ``config``
            agent_id: Identifier scoping the agent's documents

        Returns:
            Configured AgentService instance
        """
        agent_config = agent_config or StarknetAgentFactory.create_agent_config(config)
        llm_provider = llm_provider or StarknetAgentFactory.create_llm_provider(config)
        db_adapter = db_adapter or StarknetAgentFactory.create_db_adapter(config)

        starknet_config = config.get("starknet", {})
        if not starknet_config.get("rpc_url"):
            raise ValueError("Starknet RPC URL is required in config.")

        repository = MongoAgentRepository(db_adapter) if db_adapter else None

        if vector_store is None and config.get("pinecone") and db_adapter:
            vector_store = StarknetAgentFactory.create_vector_store(config, db_adapter)

        tool_registry = ToolRegistry(config=config)
        plugin_manager = PluginManager(config=config, tool_registry=tool_registry)
        loaded_plugins = plugin_manager.load_plugins(allowed=agent_config.plugins)
        logger.info(f"Plugins loaded: {loaded_plugins}")

        plugins = list(agent_config.plugins)
        if vector_store is not None:
            rag_plugin = RagPlugin(
                StarknetAgentFactory.create_embeddings_service(config, llm_provider),
                vector_store,
            )
            if plugin_manager.register_plugin(rag_plugin) and RAG_PLUGIN_NAME not in plugins:
                plugins.append(RAG_PLUGIN_NAME)
        if agent_config.mcp_servers:
            # MCP tools are granted once discovered on the agent's first run
            plugin_manager.register_plugin(McpPlugin(agent_config.mcp_servers))

        assigned = tool_registry.assign_plugin_tools(agent_config.name, plugins)
        logger.info(f"Agent {agent_config.name} tools: {assigned}")

        openai_config = config.get("openai", {})
        agent = AgentService(
            agent_config=agent_config,
            llm_provider=llm_provider,
            tool_registry=tool_registry,
            account_credentials={
                "account_address": starknet_config.get("account_address", ""),
                "private_key": starknet_config.get("private_key", ""),
            },
            rpc_url=starknet_config["rpc_url"],
            model_credentials={
                "provider": "openai",
                "model": openai_config.get("model"),
                "api_key": openai_config.get("api_key"),
            },
            agent_id=agent_id or config.get("agent_id"),
            repository=repository,
            model=openai_config.get("model"),
            token_tracker=TokenTracker(),
            plugin_manager=plugin_manager,
        )
        return agent

    @staticmethod
    def create_agent_storage(
        config: Dict[str, Any],
        llm_provider: Optional[Any] = None,
        vector_store: Optional[VectorStoreService] = None,
        db_adapter: Optional[MongoDBAdapter] = None,
    ) -> AgentStorage:
        """Create the store of user-defined agents kept in MongoDB.

        Each stored record becomes an agent built like the configured one,
        with the record's agent JSON and id. Limits come from ``guards``.
        The returned storage is not initialized.
        """
        db_adapter = db_adapter or StarknetAgentFactory.create_db_adapter(config)
        if db_adapter is None:
            raise ValueError("MongoDB configuration is required for agent storage.")
        llm_provider = llm_provider or StarknetAgentFactory.create_llm_provider(config)

        def build_agent(record: AgentConfigRecord) -> AgentService:
            return StarknetAgentFactory.create_from_config(
                config,
                llm_provider=llm_provider,
                vector_store=vector_store,
                db_adapter=db_adapter,
                agent_config=AgentConfig.model_validate(record.config),
                agent_id=record.id,
            )

        return AgentStorage(
            MongoAgentRepository(db_adapter), build_agent, guards=config.get("guards")
        )

    @staticmethod
    def create_worker_manager(
        config: Dict[str, Any],
        llm_provider: Optional[Any] = None,
        vector_store: Optional[VectorStoreService] = None,
        db_adapter: Optional[MongoDBAdapter] = None,
        redis: Optional[Redis] = None,
    ) -> WorkerManager:
        """Wire the file ingestion pipeline.

        Args:
            config: Configuration dictionary
            llm_provider: Existing LLM provider used for embeddings
            vector_store: Existing vector store chunks are written to
            db_adapter: Existing MongoDB adapter for job metadata
            redis: Existing Redis client for locks and cached results

        Returns:
            WorkerManager, not yet started
        """
        db_adapter = db_adapter or (
            vector_store.mongo if vector_store else StarknetAgentFactory.create_db_adapter(config)
        )
        if db_adapter is None:
            raise ValueError("MongoDB configuration is required for file ingestion.")
        llm_provider = llm_provider or StarknetAgentFactory.create_llm_provider(config)
        vector_store = vector_store or StarknetAgentFactory.create_vector_store(
            config, db_adapter
        )
        redis = redis or create_redis_client(config.get("redis"))

        workers_config = config.get("workers", {})
        retry_config = RetryConfig(
            **{k: workers_config[k] for k in RETRY_KEYS if k in workers_config}
        )

        mutex_service = RedisMutexService(redis)
        cache_service = RedisCacheService(redis)
        queue_manager = QueueManager(retry_config=retry_config)
        jobs_metadata = JobsMetadataService(
            db_adapter,
            cache_service=cache_service,
            mutex_service=mutex_service,
            queue_manager=queue_manager,
        )
        worker_service = FileIngestionWorkerService(
            chunking_service=ChunkingService(),
            embeddings_service=StarknetAgentFactory.create_embeddings_service(
                config, llm_provider
            ),
            vector_store=vector_store,
            file_validation_service=FileValidationService(),
            mutex_service=mutex_service,
            rag_config=config.get("rag"),
        )
        job_processor = JobProcessor(
            queue_manager,
            FileIngestionProcessor(worker_service),
            cache_service,
            jobs_metadata,
            result_ttl_ms=workers_config.get("result_ttl"),
        )
        logger.info(
            f"File ingestion workers configured with concurrency {workers_config.get('concurrency', 1)}"
        )
        return WorkerManager(
            queue_manager,
            job_processor,
            jobs_metadata,
            cache_service,
            concurrency=workers_config.get("concurrency", 1),
        )
