"""Command-line interface for MCP Merger."""
