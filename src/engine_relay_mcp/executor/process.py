"""Child process execution for engine CLIs.

One call to run_process() spawns one child, pushes its output line by line to
the caller's sinks, and settles exactly once:
- ExitResult on exit (non-zero exit codes included)
- ProcessTimeoutError when the configured timeout fired
- ProcessCancelledError when the cancellation token fired
- BinaryNotFoundError when the executable is missing
"""

import asyncio
import os
import weakref
from typing import Callable, Optional

from ..errors import BinaryNotFoundError, ProcessCancelledError, ProcessTimeoutError
from .logging import get_logger
from .models import ExitResult, ProcessSpec, StreamMode

# Seconds between SIGTERM and SIGKILL
KILL_GRACE_SECONDS = 1.0

# Max bytes per line read from a child stream
STREAM_LIMIT = 10 * 1024 * 1024

ChunkSink = Callable[[str], None]


class CancellationToken:
    """Shared cancel switch for one or more process runs.

    cancel() is idempotent; callbacks run once, synchronously, in the order
    they were added. Callbacks added after cancellation run immediately.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            _run_callback(callback)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it."""
        if self._cancelled:
            _run_callback(callback)
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove


def _run_callback(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception as e:
        get_logger().debug(f"Cancellation callback failed: {e}")


class ProcessHandle:
    """Live child process owned by run_process().

    Other parties (normalizers, cancellation) may write to its input or ask it
    to terminate, but never own it.
    """

    def __init__(self, process: asyncio.subprocess.Process, command: str):
        self._process = process
        self.command = command
        self._tasks: set[asyncio.Task] = set()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def input_closed(self) -> bool:
        stdin = self._process.stdin
        return stdin is None or stdin.is_closing()

    def write(self, text: str) -> bool:
        """Write text to the child's stdin. Returns False if it is closed."""
        if self.input_closed:
            return False
        try:
            self._process.stdin.write(text.encode("utf-8"))
        except (BrokenPipeError, ConnectionResetError, RuntimeError):
            # Child already exited
            return False
        return True

    def close_input(self) -> None:
        if self.input_closed:
            return
        try:
            self._process.stdin.close()
        except (BrokenPipeError, ConnectionResetError, RuntimeError):
            pass

    def _signal(self, kill: bool) -> None:
        if self._process.returncode is not None:
            return
        try:
            if kill:
                self._process.kill()
            else:
                self._process.terminate()
        except ProcessLookupError:
            pass

    async def terminate(self, grace: float = KILL_GRACE_SECONDS) -> None:
        """SIGTERM, then SIGKILL if the child is still alive after grace seconds."""
        if self._process.returncode is not None:
            return
        self._signal(kill=False)
        try:
            await asyncio.wait_for(self._process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            get_logger().debug(f"[{self.command}] Still running after SIGTERM, sending SIGKILL")
            self._signal(kill=True)
            await self._process.wait()

    def request_termination(self, grace: float = KILL_GRACE_SECONDS) -> None:
        """Schedule terminate() from synchronous code."""
        if self._process.returncode is not None:
            return
        task = asyncio.get_running_loop().create_task(self.terminate(grace))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class ProcessRegistry:
    """Set of live child processes, used to clean up on shutdown."""

    def __init__(self) -> None:
        self._handles: set[ProcessHandle] = set()

    def add(self, handle: ProcessHandle) -> None:
        self._handles.add(handle)

    def discard(self, handle: ProcessHandle) -> None:
        self._handles.discard(handle)

    def __contains__(self, handle: object) -> bool:
        return handle in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    async def terminate_all(self, grace: float = KILL_GRACE_SECONDS) -> None:
        """Terminate every tracked child and forget about them."""
        handles, self._handles = list(self._handles), set()
        if not handles:
            return
        get_logger().info(f"Terminating {len(handles)} active process(es)")
        await asyncio.gather(
            *(handle.terminate(grace) for handle in handles),
            return_exceptions=True,
        )


# Global registry instance (singleton)
_registry: Optional[ProcessRegistry] = None


def get_process_registry() -> ProcessRegistry:
    """Get or create the process-wide registry."""
    global _registry
    if _registry is None:
        _registry = ProcessRegistry()
    return _registry


async def _pump(stream: asyncio.StreamReader, chunks: list[str], sink: Optional[ChunkSink]) -> None:
    """Read a child stream line by line, accumulating and forwarding each chunk."""
    async for line in stream:
        text = line.decode("utf-8", errors="replace")
        chunks.append(text)
        if sink:
            sink(text)


def _deliver_input(handle: ProcessHandle, spec: ProcessSpec) -> None:
    if spec.input_text is not None:
        handle.write(spec.input_text)
        if not spec.keep_input_open:
            handle.close_input()
    elif not spec.keep_input_open:
        # Without EOF some CLIs wait on stdin forever
        handle.close_input()


async def run_process(
    spec: ProcessSpec,
    *,
    on_stdout: Optional[ChunkSink] = None,
    on_stderr: Optional[ChunkSink] = None,
    on_spawn: Optional[Callable[[ProcessHandle], None]] = None,
    registry: Optional[ProcessRegistry] = None,
) -> ExitResult:
    """Spawn spec.command and wait for it to settle.

    Args:
        spec: What to run and how.
        on_stdout: Called with each stdout line as soon as it is read.
        on_stderr: Called with each stderr line as soon as it is read.
        on_spawn: Called once with the live handle, before any input is written.
        registry: Live-process registry. Defaults to the process-wide one.

    Returns:
        ExitResult with the exit code and the full captured output.
    """
    logger = get_logger()
    registry = registry if registry is not None else get_process_registry()
    token = spec.cancel_token

    if token is not None and token.cancelled:
        raise ProcessCancelledError(spec.command)

    piped = spec.stream_mode == StreamMode.PIPE
    env = {**os.environ, **spec.env} if spec.env else None

    try:
        process = await asyncio.create_subprocess_exec(
            spec.command,
            *spec.args,
            stdin=asyncio.subprocess.PIPE if piped else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE if piped else None,
            stderr=asyncio.subprocess.PIPE if piped else None,
            limit=STREAM_LIMIT,
            cwd=spec.cwd,
            env=env,
        )
    except FileNotFoundError as e:
        if spec.cwd and not os.path.isdir(spec.cwd):
            raise
        raise BinaryNotFoundError(spec.command, full_command=spec.display) from e

    handle = ProcessHandle(process, spec.command)
    registry.add(handle)
    logger.debug(f"[{spec.command}] Spawned pid={handle.pid}")

    timed_out = False
    timer: Optional[asyncio.Task] = None
    unsubscribe: Callable[[], None] = lambda: None
    stdout_chunks: list[str] = []
    stderr_chunks: list[str] = []

    try:
        if on_spawn:
            on_spawn(handle)

        if spec.timeout is not None and spec.timeout > 0:
            async def expire() -> None:
                nonlocal timed_out
                await asyncio.sleep(spec.timeout)
                timed_out = True
                logger.info(f"[{spec.command}] ⏱️ Timed out after {spec.timeout}s, terminating")
                await handle.terminate()

            timer = asyncio.create_task(expire())

        if token is not None:
            handle_ref = weakref.ref(handle)

            def on_cancel() -> None:
                target = handle_ref()
                if target is None:
                    return
                logger.info(f"[{spec.command}] Cancelled, terminating")
                target.close_input()
                target.request_termination()

            unsubscribe = token.add_callback(on_cancel)

        if piped:
            _deliver_input(handle, spec)
            await asyncio.gather(
                _pump(process.stdout, stdout_chunks, on_stdout),
                _pump(process.stderr, stderr_chunks, on_stderr),
            )

        exit_code = await process.wait()
    except BaseException:
        # Covers asyncio cancellation of the caller as well as sink failures
        await asyncio.shield(handle.terminate())
        raise
    finally:
        if timer is not None:
            timer.cancel()
        unsubscribe()
        handle.close_input()
        registry.discard(handle)

    if timed_out:
        raise ProcessTimeoutError(spec.command, spec.timeout)
    if token is not None and token.cancelled:
        raise ProcessCancelledError(spec.command)

    logger.debug(f"[{spec.command}] Exited with code {exit_code}")
    return ExitResult(
        exit_code=exit_code,
        stdout="".join(stdout_chunks),
        stderr="".join(stderr_chunks),
    )
