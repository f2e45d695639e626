"""Dealership sales calendar: event store, week grid layout and MCP server."""

__version__ = "0.1.0"
