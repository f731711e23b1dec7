"""
CLI helper functions and utilities.
"""

from .errors import handle_errors
from .io import parse_rename_options, read_config_set, read_json_file, write_json_file

__all__ = [
    'handle_errors',
    'parse_rename_options',
    'read_config_set',
    'read_json_file',
    'write_json_file',
]
