"""CLI command groups for MCP Merger."""
