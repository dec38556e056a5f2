"""
Adapters for external systems and services.

These adapters implement the interfaces defined in starknet_agent.interfaces
and provide concrete implementations for MongoDB, OpenAI, Pinecone and Redis.
"""
