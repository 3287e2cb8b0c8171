from __future__ import annotations

import asyncio
import os
import signal
import subprocess
from collections.abc import Sequence

from pydantic import BaseModel

from termagent.log import logger
from termagent.services.platform import PlatformService

DEFAULT_TIMEOUT_SECONDS = 30


class ShellResult(BaseModel):
    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    command: str = ""
    shell_label: str = ""


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class ShellExecutor:
    """Run one child process per call with timeout, cancellation and output capture.

    Whatever happens, the child (and on POSIX its whole process group) is dead
    before ``execute``/``run`` returns or raises.
    """

    def __init__(self, platform: PlatformService) -> None:
        self.platform = platform

    async def execute(
        self,
        command: str,
        working_directory: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> ShellResult:
        argv = self.platform.shell_argv(command)
        return await self.run(argv, working_directory, timeout_seconds, command=command)

    async def run(
        self,
        argv: Sequence[str],
        working_directory: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        command: str | None = None,
    ) -> ShellResult:
        command = command if command is not None else subprocess.list2cmdline(argv)
        label = self.platform.shell_label

        try:
            process = await self._spawn(argv, working_directory)
        except OSError as e:
            logger.warning(f"Failed to start {argv[0]!r} in {working_directory}: {e}")
            return ShellResult(
                success=False,
                exit_code=-1,
                stderr=f"Error executing command: {e}",
                command=command,
                shell_label=label,
            )

        logger.debug(f"Spawned pid {process.pid}: {command}")
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.warning(f"Command timed out after {timeout_seconds}s, killed pid {process.pid}: {command}")
            return ShellResult(
                success=False,
                exit_code=-1,
                stderr=f"Command timed out after {timeout_seconds:g} seconds",
                command=command,
                shell_label=label,
            )
        except BaseException:
            # Cancellation (or anything else) must not leave the child running.
            await self._kill(process)
            logger.info(f"Killed pid {process.pid} after interruption: {command}")
            raise

        exit_code = process.returncode if process.returncode is not None else -1
        return ShellResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            command=command,
            shell_label=label,
        )

    async def _spawn(self, argv: Sequence[str], working_directory: str) -> asyncio.subprocess.Process:
        kwargs = {}
        if self.platform.is_windows:
            kwargs["creationflags"] = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0) | getattr(
                subprocess, "CREATE_NO_WINDOW", 0
            )
        else:
            kwargs["start_new_session"] = True

        return await asyncio.create_subprocess_exec(
            *argv,
            cwd=working_directory,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **kwargs,
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            if self.platform.is_windows:
                await self._kill_windows_tree(process)
            else:
                try:
                    os.killpg(process.pid, signal.SIGKILL)
                except ProcessLookupError:
                    pass
                except PermissionError:
                    process.kill()

        # Reap the child even if the caller is being cancelled again.
        await asyncio.shield(process.wait())

    async def _kill_windows_tree(self, process: asyncio.subprocess.Process) -> None:
        try:
            killer = await asyncio.create_subprocess_exec(
                "taskkill",
                "/F",
                "/T",
                "/PID",
                str(process.pid),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await killer.wait()
        except OSError as e:
            logger.warning(f"taskkill failed for pid {process.pid}: {e}")

        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
