"""Tests for executor.process module."""

import asyncio
import time

import pytest
from engine_relay_mcp.errors import (
    BinaryNotFoundError,
    ProcessCancelledError,
    ProcessTimeoutError,
)
from engine_relay_mcp.executor import (
    CancellationToken,
    ProcessRegistry,
    ProcessSpec,
    run_process,
)

SLEEPER = "import time; print('started', flush=True); time.sleep(30)"


class TestCancellationToken:
    """Tests for CancellationToken class."""

    def test_cancel_idempotent(self):
        """TC-UNIT-01: Повторный cancel() не вызывает callbacks снова."""
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append(1))

        token.cancel()
        token.cancel()

        assert token.cancelled is True
        assert calls == [1]

    def test_callback_after_cancel_runs_immediately(self):
        """TC-UNIT-02: Callback, добавленный после отмены, вызывается сразу."""
        token = CancellationToken()
        token.cancel()
        calls = []

        token.add_callback(lambda: calls.append(1))

        assert calls == [1]

    def test_remove_callback(self):
        """Отписанный callback не вызывается."""
        token = CancellationToken()
        calls = []
        remove = token.add_callback(lambda: calls.append(1))

        remove()
        token.cancel()

        assert calls == []

    def test_failing_callback_does_not_stop_others(self):
        """Ошибка в одном callback не мешает остальным."""
        token = CancellationToken()
        calls = []

        def broken():
            raise RuntimeError("boom")

        token.add_callback(broken)
        token.add_callback(lambda: calls.append(2))
        token.cancel()

        assert calls == [2]


class TestRunProcess:
    """Tests for run_process() function."""

    @pytest.mark.asyncio
    async def test_exit_result_and_sinks(self, python_child):
        """TC-UNIT-03: Вывод накапливается и сразу передаётся в sinks."""
        command, args = python_child(
            "import sys; print('out1'); print('out2'); print('err', file=sys.stderr); sys.exit(3)"
        )
        stdout_chunks = []
        stderr_chunks = []
        registry = ProcessRegistry()

        result = await run_process(
            ProcessSpec(command=command, args=args),
            on_stdout=stdout_chunks.append,
            on_stderr=stderr_chunks.append,
            registry=registry,
        )

        # Ненулевой код выхода не является ошибкой на этом уровне
        assert result.exit_code == 3
        assert result.stdout == "out1\nout2\n"
        assert result.stderr == "err\n"
        assert stdout_chunks == ["out1\n", "out2\n"]
        assert stderr_chunks == ["err\n"]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_input_written_and_closed(self, python_child):
        """TC-UNIT-04: Входной текст записывается, stdin закрывается."""
        command, args = python_child("import sys; print(sys.stdin.read().upper())")

        result = await run_process(
            ProcessSpec(command=command, args=args, input_text="hello"),
            registry=ProcessRegistry(),
        )

        assert result.stdout.strip() == "HELLO"

    @pytest.mark.asyncio
    async def test_stdin_closed_without_input(self, python_child):
        """TC-UNIT-05: Без входного текста stdin сразу закрывается (EOF)."""
        command, args = python_child("import sys; print(repr(sys.stdin.read()))")

        result = await asyncio.wait_for(
            run_process(ProcessSpec(command=command, args=args), registry=ProcessRegistry()),
            timeout=10,
        )

        assert result.stdout.strip() == "''"

    @pytest.mark.asyncio
    async def test_keep_input_open_allows_later_writes(self, python_child):
        """TC-UNIT-06: Открытый stdin позволяет писать после запуска."""
        command, args = python_child(
            "import sys\n"
            "first = sys.stdin.readline()\n"
            "print('got ' + first.strip(), flush=True)\n"
            "second = sys.stdin.readline()\n"
            "print('then ' + second.strip(), flush=True)\n"
        )
        handles = []

        def on_stdout(chunk):
            if chunk.startswith("got"):
                handles[0].write("second\n")
                handles[0].close_input()

        result = await asyncio.wait_for(
            run_process(
                ProcessSpec(command=command, args=args, input_text="first\n", keep_input_open=True),
                on_stdout=on_stdout,
                on_spawn=handles.append,
                registry=ProcessRegistry(),
            ),
            timeout=10,
        )

        assert result.stdout == "got first\nthen second\n"

    @pytest.mark.asyncio
    async def test_timeout(self, python_child):
        """TC-UNIT-07: По таймауту процесс завершается с ProcessTimeoutError."""
        command, args = python_child(SLEEPER)
        registry = ProcessRegistry()
        handles = []

        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError) as exc_info:
            await run_process(
                ProcessSpec(command=command, args=args, timeout=0.5),
                on_spawn=handles.append,
                registry=registry,
            )

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.kind == "timeout"
        assert time.monotonic() - started < 10
        # Реестр больше не содержит процесс
        assert handles[0] not in registry
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_timeout_escalates_to_kill(self, python_child):
        """TC-UNIT-08: Процесс, игнорирующий SIGTERM, убивается SIGKILL."""
        command, args = python_child(
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )

        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError):
            await run_process(
                ProcessSpec(command=command, args=args, timeout=0.5),
                registry=ProcessRegistry(),
            )

        assert time.monotonic() - started < 10

    @pytest.mark.asyncio
    async def test_cancel_after_spawn(self, python_child):
        """TC-UNIT-09: Отмена после запуска всегда даёт ProcessCancelledError."""
        command, args = python_child(SLEEPER)
        token = CancellationToken()
        registry = ProcessRegistry()

        def on_stdout(chunk):
            if chunk.startswith("started"):
                token.cancel()

        with pytest.raises(ProcessCancelledError):
            await asyncio.wait_for(
                run_process(
                    ProcessSpec(command=command, args=args, cancel_token=token),
                    on_stdout=on_stdout,
                    registry=registry,
                ),
                timeout=10,
            )

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_cancel_racing_natural_exit(self, python_child):
        """TC-UNIT-10: Отмена перед самым выходом не даёт успешного результата."""
        command, args = python_child("print('bye')")
        token = CancellationToken()

        def on_stdout(chunk):
            token.cancel()

        with pytest.raises(ProcessCancelledError):
            await run_process(
                ProcessSpec(command=command, args=args, cancel_token=token),
                on_stdout=on_stdout,
                registry=ProcessRegistry(),
            )

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, python_child):
        """Уже отменённый токен не запускает процесс."""
        command, args = python_child("print('never')")
        token = CancellationToken()
        token.cancel()
        spawned = []

        with pytest.raises(ProcessCancelledError):
            await run_process(
                ProcessSpec(command=command, args=args, cancel_token=token),
                on_spawn=spawned.append,
                registry=ProcessRegistry(),
            )

        assert spawned == []

    @pytest.mark.asyncio
    async def test_binary_not_found(self):
        """TC-UNIT-11: Отсутствующий бинарник даёт BinaryNotFoundError."""
        with pytest.raises(BinaryNotFoundError) as exc_info:
            await run_process(
                ProcessSpec(command="engine-relay-definitely-missing", args=("--flag",)),
                registry=ProcessRegistry(),
            )

        assert exc_info.value.command == "engine-relay-definitely-missing"
        assert exc_info.value.full_command == "engine-relay-definitely-missing --flag"

    @pytest.mark.asyncio
    async def test_task_cancellation_terminates_child(self, python_child):
        """TC-UNIT-12: Отмена asyncio-задачи завершает дочерний процесс."""
        command, args = python_child(SLEEPER)
        registry = ProcessRegistry()
        handles = []

        task = asyncio.create_task(
            run_process(ProcessSpec(command=command, args=args), on_spawn=handles.append, registry=registry)
        )
        while not handles:
            await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert handles[0].returncode is not None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_env_merged_over_process_env(self, python_child):
        """Переменные spec.env добавляются к окружению процесса."""
        command, args = python_child("import os; print(os.environ['ENGINE_RELAY_TEST'], 'PATH' in os.environ)")

        result = await run_process(
            ProcessSpec(command=command, args=args, env={"ENGINE_RELAY_TEST": "value"}),
            registry=ProcessRegistry(),
        )

        assert result.stdout.strip() == "value True"


class TestProcessRegistry:
    """Tests for ProcessRegistry class."""

    @pytest.mark.asyncio
    async def test_terminate_all(self, python_child):
        """TC-UNIT-13: terminate_all() завершает все живые процессы."""
        command, args = python_child(SLEEPER)
        registry = ProcessRegistry()
        handles = []

        tasks = [
            asyncio.create_task(
                run_process(ProcessSpec(command=command, args=args), on_spawn=handles.append, registry=registry)
            )
            for _ in range(2)
        ]
        while len(handles) < 2:
            await asyncio.sleep(0.05)
        assert len(registry) == 2

        await registry.terminate_all()
        results = await asyncio.wait_for(asyncio.gather(*tasks), timeout=10)

        assert all(result.exit_code != 0 for result in results)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_terminate_all_empty(self):
        """Пустой реестр завершается без ошибок."""
        await ProcessRegistry().terminate_all()
