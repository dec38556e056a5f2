"""
Service implementations for the Starknet Agent system.

These services implement the agent execution loop and the file ingestion
pipeline with its Redis-backed coordination.
"""
