"""Unit tests for the command runner."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from src.infra.shell_commands import CommandResult, CommandRunner


@pytest.fixture
def runner(tmp_path: Path) -> CommandRunner:
    return CommandRunner(tmp_path, default_timeout=10)


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestRun:
    @pytest.mark.asyncio
    async def test_captures_output(self, runner: CommandRunner) -> None:
        result = await runner.run(_python("print('hello')"))

        assert result.success
        assert result.stdout.strip() == "hello"
        assert result.returncode == 0

    @pytest.mark.asyncio
    async def test_runs_in_project_root(self, runner: CommandRunner, tmp_path: Path) -> None:
        result = await runner.run(_python("import os; print(os.getcwd())"))

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_failure_keeps_stderr(self, runner: CommandRunner) -> None:
        result = await runner.run(
            _python("import sys; sys.stderr.write('bad input'); sys.exit(3)")
        )

        assert not result.success
        assert result.returncode == 3
        assert result.error_output == "bad input"

    @pytest.mark.asyncio
    async def test_input_data_goes_to_stdin(self, runner: CommandRunner) -> None:
        result = await runner.run(
            _python("import sys; print(sys.stdin.read().upper())"), input_data="abc"
        )

        assert result.stdout.strip() == "ABC"

    @pytest.mark.asyncio
    async def test_timeout_is_a_failed_result(self, runner: CommandRunner) -> None:
        result = await runner.run(_python("import time; time.sleep(5)"), timeout=0.2)

        assert not result.success
        assert result.timed_out
        assert result.returncode == -1

    @pytest.mark.asyncio
    async def test_missing_executable(self, runner: CommandRunner) -> None:
        result = await runner.run(["definitely-not-a-real-binary-xyz"])

        assert result.returncode == 127
        assert not result.success


class TestRunStreaming:
    @pytest.mark.asyncio
    async def test_streams_lines(self, runner: CommandRunner) -> None:
        lines: list[str] = []

        result = await runner.run_streaming(
            _python("import sys\nfor i in range(3): print(f'line {i}')\nsys.stderr.write('err\\n')"),
            on_output=lines.append,
        )

        assert result.success
        assert lines[:3] == ["line 0", "line 1", "line 2"]
        assert "err" in lines
        assert result.stdout.splitlines()[0] == "line 0"

    @pytest.mark.asyncio
    async def test_streaming_timeout_kills_process(self, runner: CommandRunner) -> None:
        result = await runner.run_streaming(
            _python("import time\nprint('start', flush=True)\ntime.sleep(5)"), timeout=0.3
        )

        assert result.timed_out
        assert result.stdout == "start"

    @pytest.mark.asyncio
    async def test_streaming_missing_executable(self, runner: CommandRunner) -> None:
        result = await runner.run_streaming(["definitely-not-a-real-binary-xyz"])

        assert result.returncode == 127


def test_error_output_prefers_stderr() -> None:
    assert CommandResult(success=False, stdout="out", stderr=" err ").error_output == "err"
    assert CommandResult(success=False, stdout=" out ").error_output == "out"
