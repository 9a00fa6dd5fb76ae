"""Shared subprocess utilities for collectors and receivers."""

import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional, Sequence

from ..utils.errors import CommandError

REDACTED = "<redacted>"


@dataclass
class CommandResult:
    """Outcome of one external command invocation."""

    command: str  # Shell-quoted command line with secrets redacted
    returncode: Optional[int]  # None if the process could not be started
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        """One-line summary for log messages."""
        if self.returncode is None:
            return f"Failed to execute command \"{self.command}\": {self.error}"
        return f"Command \"{self.command}\" exited with code {self.returncode}"


class ProcessRunner:
    """Helper class for launching external diagnostic commands."""

    @staticmethod
    def redact(argv: Sequence[str], secrets: Iterable[str] = ()) -> str:
        """
        Render a command line safe for logging.

        Args:
            argv: Argument vector
            secrets: Values (e.g. passwords) that must not appear in logs

        Returns:
            str: Shell-quoted command line with every secret replaced
        """
        secrets = [secret for secret in secrets if secret]
        parts = []
        for arg in map(str, argv):
            if arg in secrets:
                parts.append(REDACTED)
                continue
            # Replace before quoting: quoting may rewrite a secret beyond recognition
            for secret in secrets:
                arg = arg.replace(secret, REDACTED)
            parts.append(shlex.quote(arg))
        return " ".join(parts)

    @staticmethod
    async def run(
        argv: Sequence[str],
        stdin: Optional[bytes] = b"\n",
        secrets: Iterable[str] = (),
        logger: Optional[logging.Logger] = None
    ) -> CommandResult:
        """
        Execute command, wait for it and capture its output.

        Args:
            argv: Argument vector, argv[0] is the binary
            stdin: Bytes written to the command's stdin (None for /dev/null)
            secrets: Values to redact from the logged command line
            logger: Optional logger instance

        Returns:
            CommandResult: Captured output; never raises for a non-zero exit
        """
        secrets = tuple(secrets)
        command = ProcessRunner.redact(argv, secrets)
        if logger:
            logger.debug(f"Executing command: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            if logger:
                logger.debug(f"Failed to start command {command}: {e}")
            return CommandResult(command=command, returncode=None, error=str(e))

        stdout_data, stderr_data = await process.communicate(stdin)

        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=stdout_data.decode('utf-8', errors='replace'),
            stderr=stderr_data.decode('utf-8', errors='replace'),
        )

        if logger:
            logger.debug(
                f"Command completed with exit code {result.returncode} "
                f"({len(result.stdout)} bytes)"
            )

        return result

    @staticmethod
    async def stream(
        argv: Sequence[str],
        secrets: Iterable[str] = (),
        logger: Optional[logging.Logger] = None
    ) -> AsyncIterator[str]:
        """
        Execute command and yield its stdout line by line as it is produced.

        stderr is drained concurrently. After the last line the command is
        awaited; a non-zero exit raises CommandError.

        Args:
            argv: Argument vector, argv[0] is the binary
            secrets: Values to redact from the logged command line
            logger: Optional logger instance

        Yields:
            str: stdout lines without trailing newline

        Raises:
            CommandError: If the command cannot be started or exits non-zero
        """
        secrets = tuple(secrets)
        command = ProcessRunner.redact(argv, secrets)
        if logger:
            logger.debug(f"Streaming command: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            result = CommandResult(command=command, returncode=None, error=str(e))
            raise CommandError(result.describe(), result) from e

        stderr_task = asyncio.ensure_future(process.stderr.read())
        finished = False
        try:
            async for raw_line in process.stdout:
                yield raw_line.decode('utf-8', errors='replace').rstrip('\r\n')

            returncode = await process.wait()
            stderr_data = await stderr_task
            finished = True

        finally:
            if not finished:
                # Consumer went away before the command ended
                if process.returncode is None:
                    try:
                        process.kill()
                    except ProcessLookupError:
                        pass
                    await process.wait()
                stderr_task.cancel()

        result = CommandResult(
            command=command,
            returncode=returncode,
            stderr=stderr_data.decode('utf-8', errors='replace'),
        )
        if not result.ok:
            raise CommandError(result.describe(), result)

        if logger:
            logger.debug(f"Command completed: {command}")
