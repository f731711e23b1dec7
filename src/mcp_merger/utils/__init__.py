"""Utility modules for MCP Merger."""

from mcp_merger.utils.logging import get_logger, setup_logging
from mcp_merger.utils.config import Config, get_config, load_config, reload_config

__all__ = [
    "get_logger",
    "setup_logging",
    "Config",
    "get_config",
    "load_config",
    "reload_config",
]
