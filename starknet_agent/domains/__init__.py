"""
Domain models for the Starknet Agent system.

This package contains the configuration, record, ingestion and job models
shared by the services, plus the error taxonomy.
"""
