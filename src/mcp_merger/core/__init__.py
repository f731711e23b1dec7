"""Core merging, conversion and status logic for MCP Merger."""
