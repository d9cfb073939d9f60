# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the procsup test suite.

This module provides:
- Temporary state files and configs bound to an ephemeral loopback port
- A recording launcher that captures specs instead of spawning
- A launch-outcome collector usable as the daemon's launch hook
- A running daemon (serving on a background thread) plus a client for it

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from procsup.core.client import CommandClient
from procsup.core.config import ENV_OVERRIDES, SupervisorConfig
from procsup.core.daemon import SupervisorDaemon
from procsup.core.launcher import ProcessLauncher, SpawnError
from procsup.core.models import LaunchOutcome, ManagedProcessSpec
from procsup.core.registry import ProcessRegistry
from procsup.core.transport import TransportError


# =============================================================================
# Environment and Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's PROCSUP_* variables out of every test."""
    for env_name in ENV_OVERRIDES:
        monkeypatch.delenv(env_name, raising=False)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    """Registry file location inside a not-yet-existing directory."""
    return tmp_path / "state" / "processes.json"


@pytest.fixture
def config(state_path: Path) -> SupervisorConfig:
    """Config bound to an ephemeral loopback port with a short reply wait."""
    return SupervisorConfig(
        host="127.0.0.1",
        port=0,
        state_path=state_path,
        reply_timeout=2.0,
        max_launch_workers=2,
    )


@pytest.fixture
def registry(state_path: Path) -> ProcessRegistry:
    return ProcessRegistry(state_path)


def make_spec(spec_id: int, command: str = "/bin/true", **overrides) -> ManagedProcessSpec:
    """Build a spec with sensible defaults for tests."""
    values = {
        "id": spec_id,
        "created_at": 1_700_000_000 + spec_id,
        "name": f"proc-{spec_id}",
        "command": command,
        "args": [],
        "pwd": "/tmp",
        "enabled": True,
    }
    values.update(overrides)
    return ManagedProcessSpec(**values)


@pytest.fixture
def spec_factory() -> Callable[..., ManagedProcessSpec]:
    """Factory for ManagedProcessSpec values: ``spec_factory(1, enabled=False)``."""
    return make_spec


# =============================================================================
# Launch Fakes
# =============================================================================


class RecordingLauncher(ProcessLauncher):
    """Launcher that records specs instead of spawning.

    Commands listed in ``fail_commands`` raise SpawnError like a missing
    executable would.
    """

    def __init__(self, fail_commands: set[str] | None = None):
        self.fail_commands = fail_commands or set()
        self.launched: list[ManagedProcessSpec] = []
        self._lock = threading.Lock()

    def launch(self, spec: ManagedProcessSpec) -> LaunchOutcome:
        if spec.command in self.fail_commands:
            raise SpawnError(f"No such file: {spec.command}")
        with self._lock:
            self.launched.append(spec)
        return LaunchOutcome(spec_id=spec.id, command=spec.command, pwd=spec.pwd, pid=4242)


@dataclass
class OutcomeCollector:
    """Thread-safe launch hook that lets tests wait for N outcomes."""

    outcomes: list[LaunchOutcome] = field(default_factory=list)
    _cond: threading.Condition = field(default_factory=threading.Condition)

    def __call__(self, outcome: LaunchOutcome) -> None:
        with self._cond:
            self.outcomes.append(outcome)
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 5.0) -> list[LaunchOutcome]:
        with self._cond:
            self._cond.wait_for(lambda: len(self.outcomes) >= count, timeout=timeout)
            return list(self.outcomes)


@pytest.fixture
def recording_launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture
def outcomes() -> OutcomeCollector:
    return OutcomeCollector()


# =============================================================================
# Running Daemon Fixtures
# =============================================================================


@dataclass
class RunningDaemon:
    """A started daemon serving on a background thread."""

    daemon: SupervisorDaemon
    thread: threading.Thread
    client: CommandClient
    port: int
    exit_status: list[int] = field(default_factory=list)

    def join(self, timeout: float = 5.0) -> None:
        self.thread.join(timeout)


@pytest.fixture
def start_daemon(
    config: SupervisorConfig,
    recording_launcher: RecordingLauncher,
    outcomes: OutcomeCollector,
) -> Generator[Callable[..., RunningDaemon], None, None]:
    """Factory that starts a daemon and serves it on a background thread.

    Every daemon still running at teardown is stopped with a real Kill.
    """
    started: list[RunningDaemon] = []

    def _start(launcher: ProcessLauncher | None = None) -> RunningDaemon:
        daemon = SupervisorDaemon(
            config,
            launcher=launcher or recording_launcher,
            on_launch=outcomes,
        )
        session = daemon.start()
        port = session.address[1]
        running = RunningDaemon(
            daemon=daemon,
            thread=None,  # type: ignore[arg-type]
            client=CommandClient("127.0.0.1", port, timeout=2.0),
            port=port,
        )

        def _serve() -> None:
            running.exit_status.append(daemon.serve_forever())

        running.thread = threading.Thread(target=_serve, daemon=True)
        running.thread.start()
        started.append(running)
        return running

    yield _start

    for running in started:
        if running.thread.is_alive():
            try:
                running.client.send_kill()
            except TransportError:
                pass
            running.join()
