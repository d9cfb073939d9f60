"""Spawning of managed processes.

ProcessLauncher starts one child and forgets it: no wait, no captured
streams, no retained Popen handle. LaunchTracker runs launches on a thread
pool so a slow or failing spawn never stalls the daemon's receive loop, and
keeps the futures keyed by spec id for later stop/status work.
"""

import logging
import subprocess
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from procsup.core.models import LaunchOutcome, ManagedProcessSpec

logger = logging.getLogger(__name__)

LaunchHook = Callable[[LaunchOutcome], None]


class SpawnError(Exception):
    """Child process could not be created."""

    pass


class ProcessLauncher:
    """Start a child process from a spec."""

    def launch(self, spec: ManagedProcessSpec) -> LaunchOutcome:
        """Spawn ``spec.command`` with ``spec.args`` in ``spec.pwd``.

        Standard streams are inherited from the daemon.

        Raises:
            SpawnError: Missing executable, missing working directory,
                permission denied, or an empty command.
        """
        if not spec.command:
            raise SpawnError(f"Process {spec.id} has an empty command")

        try:
            process = subprocess.Popen(
                [spec.command, *spec.args],
                cwd=spec.pwd or None,
            )
        except OSError as e:
            raise SpawnError(f"Failed to start {spec.command!r} in {spec.pwd!r}: {e}") from e

        return LaunchOutcome(
            spec_id=spec.id,
            command=spec.command,
            pwd=spec.pwd,
            pid=process.pid,
        )


class LaunchTracker:
    """Fire-and-forget launch executor with an observation hook.

    USAGE:
        tracker = LaunchTracker(ProcessLauncher(), max_workers=4, on_launch=print)
        tracker.submit(spec)   # returns immediately

    The hook runs on a worker thread once per launch attempt, successful or
    not. Exceptions raised by the hook are logged and dropped.
    """

    def __init__(
        self,
        launcher: ProcessLauncher | None = None,
        max_workers: int = 4,
        on_launch: LaunchHook | None = None,
    ):
        self.launcher = launcher or ProcessLauncher()
        self.on_launch = on_launch
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="procsup-launch"
        )
        self._lock = threading.Lock()
        self._tasks: dict[int, Future[LaunchOutcome]] = {}

    def submit(self, spec: ManagedProcessSpec) -> Future[LaunchOutcome]:
        """Schedule a launch and return without waiting for it."""
        future = self._executor.submit(self._run, spec)
        with self._lock:
            self._tasks[spec.id] = future
        return future

    def get(self, spec_id: int) -> Future[LaunchOutcome] | None:
        """Future of the most recent launch for a spec id, if any."""
        with self._lock:
            return self._tasks.get(spec_id)

    def pending(self) -> list[int]:
        """Spec ids whose launch has not finished yet."""
        with self._lock:
            return [spec_id for spec_id, f in self._tasks.items() if not f.done()]

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting launches. Already-spawned children keep running."""
        self._executor.shutdown(wait=wait)

    def _run(self, spec: ManagedProcessSpec) -> LaunchOutcome:
        """Worker body: never raises, always reports an outcome."""
        try:
            outcome = self.launcher.launch(spec)
            logger.info(
                f"Launched process {spec.id} ({spec.name}) as pid {outcome.pid}: {spec.command}"
            )
        except SpawnError as e:
            logger.error(f"Launch of process {spec.id} ({spec.name}) failed: {e}")
            outcome = LaunchOutcome(
                spec_id=spec.id,
                command=spec.command,
                pwd=spec.pwd,
                error=str(e),
            )
        except Exception as e:
            logger.error(
                f"Unexpected error launching process {spec.id} ({spec.name}): {e}",
                exc_info=True,
            )
            outcome = LaunchOutcome(
                spec_id=spec.id,
                command=spec.command,
                pwd=spec.pwd,
                error=f"unexpected error: {e}",
            )

        if self.on_launch is not None:
            try:
                self.on_launch(outcome)
            except Exception as e:
                logger.warning(f"Launch hook failed for process {spec.id}: {e}")

        return outcome
