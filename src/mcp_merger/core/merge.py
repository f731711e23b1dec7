"""
Configuration merging for MCP server sets.

Combines an existing server configuration with incoming entries under a
caller-supplied rename map.

Ordering rules:
    * Incoming entries are processed in their original order. When two of
      them resolve to the same name after renaming, the later one wins.
    * Names already present in the existing set keep their original
      position even when their entry is overwritten.
    * Names introduced by the incoming set are appended after all
      pre-existing names, in processing order.

Merging a sequence of sets is order-independent only when no name collides
across steps; with collisions the last overwrite decides the entry.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from mcp_merger.core.exceptions import InvalidInput
from mcp_merger.core.models import MergeResult, ServerConfigSet, ServerEntry
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

RenameMap = Mapping[str, str]


class ConfigMergeEngine:
    """Merges MCP server configuration sets."""

    def merge(
        self,
        existing: ServerConfigSet,
        incoming: ServerConfigSet,
        rename_map: Optional[RenameMap] = None,
    ) -> MergeResult:
        """
        Merge incoming servers into an existing configuration.

        Args:
            existing: Configuration being merged into; decides the output shape
            incoming: Servers to add or overwrite
            rename_map: Old name to new name, applied to incoming only

        Returns:
            MergeResult with the merged set and newly added names

        Raises:
            InvalidInput: If an argument is not a well-formed set or rename map
        """
        self._validate_set(existing, "existing")
        self._validate_set(incoming, "incoming")
        renames = self._validate_rename_map(rename_map)

        renamed = self._apply_renames(incoming, renames)

        merged: Dict[str, ServerEntry] = {
            name: entry.model_copy(deep=True) for name, entry in existing.servers.items()
        }
        added_names: List[str] = []
        for name, entry in renamed.items():
            if name in existing.servers:
                logger.debug(f"Overwriting existing server '{name}'")
            else:
                added_names.append(name)
            merged[name] = entry.model_copy(deep=True)

        logger.info(
            f"Merged {len(renamed)} incoming servers: "
            f"{len(added_names)} added, {len(merged)} total"
        )

        return MergeResult(
            merged=ServerConfigSet(wrapped=existing.wrapped, servers=merged),
            added_names=added_names,
        )

    def merge_many(
        self,
        base: ServerConfigSet,
        sources: Iterable[Tuple[ServerConfigSet, Optional[RenameMap]]],
    ) -> MergeResult:
        """
        Fold several incoming sets into a base configuration, left to right.

        Args:
            base: Starting configuration; decides the output shape
            sources: ``(incoming, rename_map)`` pairs

        Returns:
            MergeResult whose ``added_names`` covers every step
        """
        current = base
        added: List[str] = []
        for incoming, rename_map in sources:
            result = self.merge(current, incoming, rename_map)
            added.extend(n for n in result.added_names if n not in added)
            current = result.merged

        return MergeResult(merged=current, added_names=added)

    def find_conflicts(
        self,
        existing: ServerConfigSet,
        incoming: ServerConfigSet,
        rename_map: Optional[RenameMap] = None,
    ) -> List[str]:
        """
        List the effective incoming names that would overwrite existing servers.

        Callers use this to offer renames before merging.
        """
        self._validate_set(existing, "existing")
        self._validate_set(incoming, "incoming")
        renames = self._validate_rename_map(rename_map)

        return [
            name for name in self._apply_renames(incoming, renames)
            if name in existing.servers
        ]

    def _apply_renames(
        self, incoming: ServerConfigSet, renames: Dict[str, str]
    ) -> Dict[str, ServerEntry]:
        """Resolve effective names; later entries win on collision."""
        renamed: Dict[str, ServerEntry] = {}
        for name, entry in incoming.servers.items():
            effective = renames.get(name) or name
            if effective in renamed:
                logger.warning(
                    f"Incoming servers collide on '{effective}' after renaming; keeping the later one"
                )
                # Re-insert so the surviving entry takes the later position
                del renamed[effective]
            if effective != name:
                logger.debug(f"Renaming incoming server '{name}' to '{effective}'")
            renamed[effective] = entry
        return renamed

    def _validate_set(self, value: object, label: str) -> None:
        if not isinstance(value, ServerConfigSet):
            raise InvalidInput(
                f"{label} must be a server configuration set, got {type(value).__name__}"
            )

    def _validate_rename_map(self, rename_map: Optional[RenameMap]) -> Dict[str, str]:
        if rename_map is None:
            return {}
        if not isinstance(rename_map, Mapping):
            raise InvalidInput(
                f"Rename map must be an object, got {type(rename_map).__name__}"
            )
        renames: Dict[str, str] = {}
        for old, new in rename_map.items():
            if not isinstance(old, str) or not isinstance(new, str):
                raise InvalidInput(f"Rename map entries must be strings: {old!r} -> {new!r}")
            renames[old] = new.strip()
        return renames
