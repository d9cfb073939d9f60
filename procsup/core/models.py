"""Data models for the process supervisor.

Uses Pydantic for the persisted registry document so that a state file with
the wrong shape is rejected instead of half-loaded.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ManagedProcessSpec(BaseModel):
    """A process the daemon is responsible for (re)launching."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    created_at: int = Field(alias="ts")  # epoch seconds
    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    pwd: str
    enabled: bool = True


class RegistryDocument(BaseModel):
    """On-disk shape of the registry: ``{"processes": [...]}``.

    The key is required and nothing else is allowed, so a file with the
    wrong shape fails validation instead of loading as an empty registry.
    """

    model_config = ConfigDict(extra="forbid")

    processes: list[ManagedProcessSpec]

    @model_validator(mode="after")
    def check_unique_ids(self) -> "RegistryDocument":
        """Reject documents where two specs share an id."""
        seen: set[int] = set()
        for spec in self.processes:
            if spec.id in seen:
                raise ValueError(f"Duplicate process id {spec.id} in registry")
            seen.add(spec.id)
        return self


class LoadStatus(str, Enum):
    """How a registry load went."""

    LOADED = "loaded"
    MISSING = "missing"  # No state file yet, first run
    CORRUPT = "corrupt"  # File exists but could not be read or parsed


@dataclass
class LoadResult:
    """Explicit outcome of ProcessRegistry.load().

    A CORRUPT result still carries an empty process list so callers can
    continue, but the status lets them tell it apart from a first run.
    """

    processes: list[ManagedProcessSpec]
    status: LoadStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != LoadStatus.CORRUPT

    @property
    def enabled(self) -> list[ManagedProcessSpec]:
        """Specs that should be relaunched at startup."""
        return [p for p in self.processes if p.enabled]


@dataclass
class LaunchOutcome:
    """Result of one launch attempt, handed to the launch hook."""

    spec_id: int
    command: str
    pwd: str
    pid: int | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None
