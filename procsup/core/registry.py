"""Durable registry of managed process specifications.

The whole registry lives in one JSON file that is replaced on every
mutation. Each mutation is read-modify-write: load the current document,
change it in memory, store the full result.

SINGLE WRITER: only one daemon may own the state file. There is no file
lock; running two daemons against the same path loses updates.
"""

import logging
import os
import time
from pathlib import Path

from pydantic import ValidationError

from procsup.core.models import (
    LoadResult,
    LoadStatus,
    ManagedProcessSpec,
    RegistryDocument,
)

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Registry state could not be written."""

    pass


def _utc_timestamp() -> int:
    """Current time as integer epoch seconds."""
    return int(time.time())


class ProcessRegistry:
    """Load/store access to the registry file.

    USAGE:
        registry = ProcessRegistry(config.state_path)
        result = registry.load()
        if result.status == LoadStatus.CORRUPT:
            ...  # already logged as a warning
        spec = registry.add(name="web", command="/usr/bin/python3",
                            args=["-m", "http.server"], pwd="/srv")
    """

    def __init__(self, state_path: str | Path):
        self.state_path = Path(state_path).expanduser()

    def load(self) -> LoadResult:
        """Read the registry. Never raises.

        A missing file is a normal first run and yields an empty registry
        silently. A file that exists but cannot be read or parsed also yields
        an empty registry, but with CORRUPT status and a logged warning.
        """
        if not self.state_path.exists():
            logger.debug(f"No registry at {self.state_path}, starting empty")
            return LoadResult(processes=[], status=LoadStatus.MISSING)

        try:
            raw = self.state_path.read_text(encoding="utf-8")
            document = RegistryDocument.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning(
                f"Registry file {self.state_path} is unreadable, treating it as empty: {e}"
            )
            return LoadResult(processes=[], status=LoadStatus.CORRUPT, error=str(e))

        return LoadResult(processes=list(document.processes), status=LoadStatus.LOADED)

    def store(self, processes: list[ManagedProcessSpec]) -> None:
        """Overwrite the registry file with the given collection.

        Writes to a sibling temp file and renames it over the target, so a
        crash mid-write leaves the previous registry intact.

        Raises:
            PersistenceError: If the directory or file cannot be written.
        """
        document = RegistryDocument(processes=processes)
        data = document.model_dump_json(by_alias=True, indent=2)

        tmp_path = self.state_path.with_name(self.state_path.name + ".tmp")
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            raise PersistenceError(f"Failed to write registry {self.state_path}: {e}") from e

    def add(
        self,
        name: str,
        command: str,
        args: list[str],
        pwd: str,
    ) -> ManagedProcessSpec:
        """Append a new enabled spec and persist the full registry.

        The spec only counts as accepted once this returns.

        Raises:
            PersistenceError: If the updated registry cannot be stored.
        """
        result = self.load()
        if result.status == LoadStatus.CORRUPT:
            self._quarantine()

        processes = result.processes
        next_id = max((p.id for p in processes), default=0) + 1
        spec = ManagedProcessSpec(
            id=next_id,
            created_at=_utc_timestamp(),
            name=name,
            command=command,
            args=list(args),
            pwd=pwd,
            enabled=True,
        )
        self.store([*processes, spec])
        logger.info(f"Registered process {spec.id} ({spec.name}): {spec.command}")
        return spec

    def _quarantine(self) -> None:
        """Move a corrupt registry file aside so the next store doesn't erase it."""
        target = self.state_path.with_name(
            f"{self.state_path.name}.corrupt-{_utc_timestamp()}"
        )
        try:
            os.replace(self.state_path, target)
        except OSError as e:
            raise PersistenceError(
                f"Registry {self.state_path} is corrupt and could not be moved aside: {e}"
            ) from e
        logger.warning(f"Moved corrupt registry {self.state_path} to {target}")
