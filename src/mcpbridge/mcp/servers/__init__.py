"""Bundled MCP tool servers, runnable with python -m."""
