"""Watch-rebuild loop: rebuild the site when post files change.

Filesystem events feed a debounce state machine::

    IDLE --event--> PENDING --quiet interval elapsed--> BUILDING --done--> IDLE
                    PENDING --event--> PENDING (deadline re-armed)
                                       BUILDING --event--> (PENDING after build)

Only one build runs at a time. The build itself is a child process started
with an argv list (no shell); its exit code and output come back as a
``BuildResult``. A failed build is logged and the loop waits for the next
change; nothing is retried automatically.
"""

import asyncio
import logging
import shlex
import signal
import sys
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from watchfiles import Change, DefaultFilter, awatch

from presence.config import Settings
from presence.services.frontmatter import MARKDOWN_SUFFIXES

logger = logging.getLogger(__name__)

DEFAULT_QUIET_INTERVAL = 5.0

Clock = Callable[[], float]


class LoopState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    BUILDING = "building"


class DebounceState:
    """Debounce state machine with an injectable clock.

    Events re-arm the deadline while PENDING. Events seen while BUILDING
    schedule a follow-up build, due one quiet interval after the last of them.
    """

    def __init__(
        self, quiet_interval: float = DEFAULT_QUIET_INTERVAL, clock: Clock = time.monotonic
    ) -> None:
        self.quiet_interval = quiet_interval
        self._clock = clock
        self.state = LoopState.IDLE
        self.deadline: float | None = None
        self._last_event: float | None = None
        self._changed_during_build = False

    def record_event(self) -> None:
        now = self._clock()
        self._last_event = now
        if self.state is LoopState.BUILDING:
            self._changed_during_build = True
            return
        self.state = LoopState.PENDING
        self.deadline = now + self.quiet_interval

    def is_due(self) -> bool:
        return (
            self.state is LoopState.PENDING
            and self.deadline is not None
            and self._clock() >= self.deadline
        )

    def seconds_until_due(self) -> float | None:
        """Time left before a pending build is due, or None when nothing is pending."""
        if self.state is not LoopState.PENDING or self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def begin_build(self) -> None:
        if not self.is_due():
            raise RuntimeError(f"Cannot start a build from state {self.state.value}")
        self.state = LoopState.BUILDING
        self.deadline = None
        self._changed_during_build = False

    def finish_build(self) -> None:
        if self.state is not LoopState.BUILDING:
            raise RuntimeError(f"No build in progress (state {self.state.value})")
        if self._changed_during_build and self._last_event is not None:
            self.state = LoopState.PENDING
            self.deadline = self._last_event + self.quiet_interval
        else:
            self.state = LoopState.IDLE
        self._changed_during_build = False


@dataclass
class BuildResult:
    """Outcome of one build command."""

    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def default_build_command() -> list[str]:
    return [sys.executable, "-m", "presence", "build"]


class BuildRunner:
    """Run build commands as child processes, stopping at the first failure."""

    def __init__(
        self,
        commands: list[list[str]],
        *,
        cwd: Path | None = None,
        timeout: float = 600.0,
    ) -> None:
        if not commands or not all(commands):
            raise ValueError("BuildRunner needs at least one non-empty command")
        self.commands = commands
        self.cwd = cwd
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, *, cwd: Path | None = None) -> "BuildRunner":
        commands = [shlex.split(settings.build_command) or default_build_command()]
        if settings.site_build_command:
            commands.append(shlex.split(settings.site_build_command))
        return cls(commands, cwd=cwd, timeout=settings.build_timeout_seconds)

    async def run(self) -> BuildResult:
        result: BuildResult | None = None
        for command in self.commands:
            result = await self._run_one(command)
            if not result.ok:
                break
        assert result is not None
        return result

    async def _run_one(self, command: list[str]) -> BuildResult:
        start = time.monotonic()
        logger.debug("Running %s", shlex.join(command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return BuildResult(
                command=command,
                returncode=127,
                stderr=str(e),
                duration=time.monotonic() - start,
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return BuildResult(
                command=command,
                returncode=proc.returncode if proc.returncode is not None else -1,
                stderr=f"Build timed out after {self.timeout:.0f}s",
                duration=time.monotonic() - start,
                timed_out=True,
            )
        except asyncio.CancelledError:
            # Don't leave an orphaned build behind
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        return BuildResult(
            command=command,
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            duration=time.monotonic() - start,
        )


class RebuildLoop:
    """Drive a build callable from filesystem events, one build at a time."""

    def __init__(
        self,
        build: Callable[[], Awaitable[BuildResult]],
        *,
        quiet_interval: float = DEFAULT_QUIET_INTERVAL,
        clock: Clock = time.monotonic,
    ) -> None:
        self._build = build
        self._debounce = DebounceState(quiet_interval, clock)
        self._wakeup = asyncio.Event()
        self._stopping = False
        self.results: list[BuildResult] = []

    @property
    def state(self) -> LoopState:
        return self._debounce.state

    def notify(self, path: str | None = None) -> None:
        """Record a filesystem change; (re)arms the debounce timer."""
        self._debounce.record_event()
        if self._debounce.state is LoopState.BUILDING:
            logger.info("Change during build, another build will follow")
        else:
            logger.info("Build scheduled (debounced)")
        self._wakeup.set()

    def request_stop(self) -> None:
        """Stop after any in-flight build finishes. Pending builds are dropped."""
        self._stopping = True
        self._wakeup.set()

    async def run(self) -> None:
        while not self._stopping:
            if self._debounce.is_due():
                await self._run_build()
                continue

            self._wakeup.clear()
            timeout = self._debounce.seconds_until_due()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout)
            except asyncio.TimeoutError:
                pass

    async def _run_build(self) -> None:
        self._debounce.begin_build()
        logger.info("Starting build process...")
        try:
            result = await self._build()
        except Exception:
            logger.exception("Build could not be run")
            return
        finally:
            self._debounce.finish_build()

        self.results.append(result)
        if result.ok:
            logger.info("Build completed successfully in %.1fs", result.duration)
            if result.stdout:
                logger.debug("Build output:\n%s", result.stdout)
        else:
            logger.error(
                "Build failed (exit %s) running %s\nstderr:\n%s",
                result.returncode,
                shlex.join(result.command),
                result.stderr.strip(),
            )


class MarkdownFilter(DefaultFilter):
    """Only markdown files; dotfiles and editor droppings are ignored."""

    def __call__(self, change: Change, path: str) -> bool:
        name = Path(path).name
        return (
            super().__call__(change, path)
            and not name.startswith(".")
            and name.lower().endswith(MARKDOWN_SUFFIXES)
        )


_CHANGE_LABELS = {
    Change.added: "New post detected",
    Change.modified: "Post modified",
    Change.deleted: "Post deleted",
}


async def watch_content(
    directory: Path,
    loop: RebuildLoop,
    stop_event: asyncio.Event,
) -> bool:
    """Feed markdown changes in *directory* to *loop* until *stop_event* is set.

    Returns False if the directory is missing or the watcher fails, True on a
    requested stop.
    """
    if not directory.is_dir():
        logger.error("Watch directory does not exist: %s", directory)
        return False

    logger.info("File watcher ready, monitoring %s", directory)
    try:
        async for changes in awatch(
            directory, watch_filter=MarkdownFilter(), stop_event=stop_event
        ):
            for change, path in sorted(changes):
                logger.info("%s: %s", _CHANGE_LABELS.get(change, change.name), Path(path).name)
                loop.notify(path)
    except (OSError, RuntimeError) as e:
        logger.error("File watcher failed on %s: %s", directory, e)
        return False
    return True


async def run_watch_service(
    settings: Settings,
    *,
    watch_path: Path | None = None,
    quiet_interval: float | None = None,
) -> int:
    """Run the watcher until SIGINT/SIGTERM. Returns a process exit code."""
    directory = watch_path or settings.content_dir
    interval = quiet_interval if quiet_interval is not None else settings.debounce_seconds
    runner = BuildRunner.from_settings(settings)
    rebuild = RebuildLoop(runner.run, quiet_interval=interval)
    stop_event = asyncio.Event()

    logger.info("Starting file watcher on %s (debounce %.1fs)", directory, interval)

    def shutdown() -> None:
        logger.info("Shutting down file watcher...")
        stop_event.set()
        rebuild.request_stop()

    event_loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, shutdown)
            handled.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops, or not running in the main thread
            logger.debug("Signal handler for %s not installed", sig.name)

    loop_task = asyncio.create_task(rebuild.run())
    try:
        watched_ok = await watch_content(directory, rebuild, stop_event)
        rebuild.request_stop()
        await loop_task
    finally:
        for sig in handled:
            event_loop.remove_signal_handler(sig)
    return 0 if watched_ok else 1
