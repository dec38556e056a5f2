"""
Plugin system for the Starknet Agent.

This package provides plugin management, tool registration, and plugin discovery
mechanisms that extend the agent system with custom functionality.
"""
