"""Tests for ProcessRunner."""

import sys

import pytest

from node_telemetry.collectors.process_runner import REDACTED, CommandResult, ProcessRunner
from node_telemetry.utils.errors import CommandError


def python_command(code: str):
    return [sys.executable, "-c", code]


class TestRedact:
    """Test suite for command line redaction."""

    def test_secret_is_replaced(self):
        command = ProcessRunner.redact(
            ["ipmi-sensors", "--user", "admin", "--password", "s3cret"], secrets=["s3cret"]
        )
        assert "s3cret" not in command
        assert f"--password {REDACTED}" in command

    @pytest.mark.parametrize("secret", ["it's", "pa'ss word", "a b", '"quoted"', "$(id)"])
    def test_secret_needing_quotes_is_replaced(self, secret):
        command = ProcessRunner.redact(
            ["ipmi-sensors", "--user", "admin", "--password", secret], secrets=[secret]
        )
        assert command == f"ipmi-sensors --user admin --password {REDACTED}"

    def test_secret_inside_argument_is_replaced(self):
        command = ProcessRunner.redact(["tool", "--password=pa'ss word"], secrets=["pa'ss word"])
        assert command == f"tool '--password={REDACTED}'"

    def test_arguments_are_quoted(self):
        assert ProcessRunner.redact(["echo", "a b"]) == "echo 'a b'"

    def test_empty_secret_is_ignored(self):
        assert ProcessRunner.redact(["ps", "-Ao", "comm"], secrets=[""]) == "ps -Ao comm"


class TestCommandResult:
    """Test suite for CommandResult."""

    def test_ok(self):
        assert CommandResult(command="true", returncode=0).ok
        assert not CommandResult(command="false", returncode=1).ok
        assert not CommandResult(command="missing", returncode=None, error="not found").ok

    def test_describe(self):
        assert "exited with code 2" in CommandResult(command="x", returncode=2).describe()
        assert "not found" in CommandResult(command="x", returncode=None, error="not found").describe()


class TestRun:
    """Test suite for ProcessRunner.run."""

    @pytest.mark.asyncio
    async def test_captures_stdout_and_stderr(self):
        result = await ProcessRunner.run(python_command(
            "import sys; print('hello'); print('oops', file=sys.stderr)"
        ))

        assert result.ok
        assert result.stdout == "hello\n"
        assert result.stderr == "oops\n"

    @pytest.mark.asyncio
    async def test_stdin_is_fed(self):
        result = await ProcessRunner.run(
            python_command("import sys; print(repr(sys.stdin.read()))"),
            stdin=b"\n",
        )
        assert result.stdout.strip() == repr("\n")

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_returned(self):
        result = await ProcessRunner.run(python_command("import sys; sys.exit(3)"))

        assert not result.ok
        assert result.returncode == 3

    @pytest.mark.asyncio
    async def test_missing_binary_is_returned(self):
        result = await ProcessRunner.run(["/nonexistent/beegfs-ctl", "--clientstats"])

        assert result.returncode is None
        assert result.error
        assert not result.ok

    @pytest.mark.asyncio
    async def test_command_is_redacted(self):
        result = await ProcessRunner.run(
            python_command("pass") + ["--password", "s3cret"], secrets=["s3cret"]
        )
        assert "s3cret" not in result.command


class TestStream:
    """Test suite for ProcessRunner.stream."""

    @pytest.mark.asyncio
    async def test_yields_lines(self):
        lines = [line async for line in ProcessRunner.stream(python_command(
            "print('a'); print('b'); print('c')"
        ))]
        assert lines == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_after_lines(self):
        lines = []
        with pytest.raises(CommandError) as exc_info:
            async for line in ProcessRunner.stream(
                python_command("import sys; print('partial'); print('bad', file=sys.stderr); sys.exit(1)")
                + ["--password", "s3cret"],
                secrets=["s3cret"],
            ):
                lines.append(line)

        assert lines == ["partial"]
        assert exc_info.value.result.returncode == 1
        assert exc_info.value.result.stderr.strip() == "bad"
        assert "s3cret" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_binary_error_is_redacted(self):
        with pytest.raises(CommandError) as exc_info:
            async for _ in ProcessRunner.stream(
                ["/nonexistent/ipmi-sensors", "--password", "pa'ss word"],
                secrets=["pa'ss word"],
            ):
                pass
        assert "pa'ss" not in str(exc_info.value)
        assert "pa'\"'\"'ss" not in str(exc_info.value)
        assert f"--password {REDACTED}" in exc_info.value.result.command

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self):
        with pytest.raises(CommandError) as exc_info:
            async for _ in ProcessRunner.stream(["/nonexistent/ipmi-sensors"]):
                pass
        assert exc_info.value.result.returncode is None

    @pytest.mark.asyncio
    async def test_abandoned_stream_kills_process(self):
        stream = ProcessRunner.stream(python_command(
            "import time\nprint('first', flush=True)\ntime.sleep(30)"
        ))
        assert await stream.__anext__() == "first"
        await stream.aclose()
