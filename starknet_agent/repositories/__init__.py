"""
Repository implementations for data access.

This package contains the MongoDB-backed agent repository and the SQL
query builder.
"""
