"""
File input/output helpers for CLI commands.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from mcp_merger.core.exceptions import InvalidInput
from mcp_merger.core.models import ServerConfigSet


def read_json_file(path: Union[str, Path]) -> Any:
    """Read and decode a JSON file, raising InvalidInput on bad content."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidInput(f"{path} is not valid JSON: {e.msg} (line {e.lineno})") from e


def read_config_set(path: Union[str, Path]) -> ServerConfigSet:
    """Read a server configuration file in either wrapped or bare form."""
    return ServerConfigSet.from_payload(read_json_file(path))


def write_json_file(path: Union[str, Path], data: Any) -> None:
    """Write JSON with a trailing newline."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")


def parse_rename_options(values: Iterable[str]) -> Dict[str, str]:
    """Parse repeated ``old=new`` options into a rename map."""
    renames: Dict[str, str] = {}
    for value in values:
        old, sep, new = value.partition("=")
        if not sep or not old.strip() or not new.strip():
            raise InvalidInput(f"Invalid rename '{value}', expected OLD=NEW")
        renames[old.strip()] = new.strip()
    return renames
