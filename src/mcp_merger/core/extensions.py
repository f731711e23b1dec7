"""
Extension manifest discovery and conversion.

Turns installed desktop extensions (directories holding a ``manifest.json``)
into MCP server entries that can be merged into a configuration.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, Union

from pydantic import ValidationError

from mcp_merger.core.exceptions import MissingServerSpec
from mcp_merger.core.models import (
    ConvertedExtension, ExtensionManifest, ServerConfigSet, ServerEntry
)
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

DIRNAME_PLACEHOLDER = "${__dirname}"
USER_CONFIG_PREFIX = "${user_config."
CREDENTIALS_DIR_ENV = "GOOGLE_MCP_CREDENTIALS_DIR"
MANIFEST_FILENAME = "manifest.json"

_USER_CONFIG_PATTERN = re.compile(r"\$\{user_config\.([^}]+)\}")


class ExtensionScanner:
    """Reads extension manifests from an extensions directory."""

    def __init__(self, extensions_dir: Union[str, Path]):
        """
        Initialize scanner.

        Args:
            extensions_dir: Directory whose subdirectories are extensions
        """
        self.extensions_dir = Path(os.path.expanduser(str(extensions_dir)))

    def scan(self) -> List[ExtensionManifest]:
        """Load every readable manifest, ordered by directory name."""
        if not self.extensions_dir.is_dir():
            logger.debug(f"Extensions directory not found: {self.extensions_dir}")
            return []

        manifests = []
        for ext_dir in sorted(p for p in self.extensions_dir.iterdir() if p.is_dir()):
            manifest_path = ext_dir / MANIFEST_FILENAME
            if not manifest_path.exists():
                continue

            try:
                with open(manifest_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                data["path"] = str(ext_dir)
                manifests.append(ExtensionManifest.model_validate(data))
            except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
                logger.warning(f"Skipping unreadable manifest {manifest_path}: {e}")

        logger.debug(f"Found {len(manifests)} extensions in {self.extensions_dir}")
        return manifests


class ExtensionConverter:
    """Converts extension manifests into MCP server entries."""

    def __init__(self, shared_credentials_dir: Union[str, Path]):
        """
        Initialize converter.

        Args:
            shared_credentials_dir: Credential directory injected into servers
                when credential sharing is requested
        """
        self.shared_credentials_dir = str(Path(os.path.expanduser(str(shared_credentials_dir))))

    def convert(self, manifest: ExtensionManifest, share_credentials: bool = False) -> ConvertedExtension:
        """
        Convert one manifest into a server entry.

        Args:
            manifest: Extension manifest
            share_credentials: Point the server at the shared credentials directory

        Returns:
            Converted entry with user-config metadata

        Raises:
            MissingServerSpec: If the manifest has no ``server.mcp_config`` command
        """
        template = manifest.server.mcp_config if manifest.server else None
        if template is None or not template.command:
            raise MissingServerSpec(
                f"Extension '{manifest.name}' does not define server.mcp_config.command",
                details={"extension": manifest.name},
            )

        command = self._substitute_dirname(template.command, manifest.path)
        args = [self._substitute_dirname(arg, manifest.path) for arg in template.args]
        env, user_config_fields = self._filter_env(template.env)

        credentials_dir = None
        if share_credentials:
            credentials_dir = self.shared_credentials_dir
            env[CREDENTIALS_DIR_ENV] = credentials_dir

        entry = ServerEntry(command=command, args=args, env=env or None)

        logger.debug(f"Converted extension '{manifest.name}' to server entry")
        return ConvertedExtension(
            name=manifest.name,
            entry=entry,
            requires_user_config=bool(manifest.user_config or user_config_fields),
            user_config_fields=user_config_fields,
            credentials_dir=credentials_dir,
        )

    def convert_all(
        self,
        manifests: Iterable[ExtensionManifest],
        share_credentials: bool = False,
    ) -> Tuple[ServerConfigSet, List[ConvertedExtension]]:
        """
        Convert several manifests into a bare configuration set.

        Manifests without a server definition are skipped.

        Returns:
            Tuple of (server set keyed by extension name, converted metadata)
        """
        servers: Dict[str, ServerEntry] = {}
        converted: List[ConvertedExtension] = []

        for manifest in manifests:
            try:
                result = self.convert(manifest, share_credentials)
            except MissingServerSpec as e:
                logger.warning(f"Skipping extension: {e.message}")
                continue
            servers[result.name] = result.entry
            converted.append(result)

        return ServerConfigSet(wrapped=False, servers=servers), converted

    def _substitute_dirname(self, value: Any, path: str) -> Any:
        if isinstance(value, str):
            return value.replace(DIRNAME_PLACEHOLDER, path)
        return value

    def _filter_env(self, env: Dict[str, Any]) -> Tuple[Dict[str, str], Dict[str, Any]]:
        """Split env into resolved entries and unresolved user-config fields."""
        resolved: Dict[str, str] = {}
        user_config_fields: Dict[str, Any] = {}

        for key, value in env.items():
            if isinstance(value, str) and USER_CONFIG_PREFIX in value:
                refs = _USER_CONFIG_PATTERN.findall(value)
                user_config_fields[key] = refs[0] if len(refs) == 1 else refs
                continue
            resolved[key] = value if isinstance(value, str) else json.dumps(value)

        return resolved, user_config_fields
