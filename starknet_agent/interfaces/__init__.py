"""
Abstract interfaces for the Starknet Agent system.

These interfaces define the contracts that concrete implementations
must adhere to, following the Dependency Inversion Principle.

This package contains:
- Plugin and tool interfaces
- Provider interfaces for external service adapters
- Service and repository interfaces for business logic components
"""
