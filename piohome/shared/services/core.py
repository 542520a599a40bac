"""PlatformIO Core directories and command execution."""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform.startswith("win")
PIO_EXECUTABLE = "platformio"


@dataclass(frozen=True)
class CommandResult:
    code: int
    stdout: str
    stderr: str


def get_home_dir() -> Path:
    """Return the PlatformIO home directory.

    ``PLATFORMIO_HOME_DIR`` wins over ``~/.platformio``. On Windows a
    path with non-ASCII characters is replaced by ``<drive>\\.platformio``.
    """
    override = os.getenv("PLATFORMIO_HOME_DIR")
    if override:
        result = override
    else:
        user_home = os.getenv("HOME")
        if IS_WINDOWS and not user_home:
            user_home = os.getenv("USERPROFILE")
        result = os.path.join(user_home or "~", ".platformio")
    if IS_WINDOWS and any(ord(ch) > 127 for ch in result):
        anchor = PureWindowsPath(result).anchor or "C:\\"
        return Path(anchor) / ".platformio"
    return Path(result).expanduser()


def get_core_dir() -> Path:
    """Directory holding homestate.json; ``PLATFORMIO_CORE_DIR`` overrides."""
    override = os.getenv("PLATFORMIO_CORE_DIR")
    if override:
        return Path(override).expanduser()
    return get_home_dir()


async def run_command(
    cmd: str,
    args: list[str],
    env: dict[str, str] | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """Run ``cmd`` with ``args`` (no shell) and collect its output.

    A missing executable is reported as exit code 127 rather than raised.
    """
    logger.debug("run_command: %s %s", cmd, " ".join(args))
    try:
        # Arguments go straight to exec, never through a shell.
        proc = await asyncio.create_subprocess_exec(
            cmd, *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            cwd=cwd,
        )
    except (FileNotFoundError, PermissionError) as exc:
        logger.warning("Cannot execute %s: %s", cmd, exc)
        return CommandResult(code=127, stdout="", stderr=str(exc))

    stdout, stderr = await proc.communicate()
    result = CommandResult(
        code=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    logger.debug("run_command: %s exited with %d", cmd, result.code)
    return result


def pio_base_args() -> list[str]:
    args = ["-f"]
    caller = os.getenv("PLATFORMIO_CALLER")
    if caller:
        args.extend(["-c", caller])
    return args


async def run_pio_command(
    args: list[str],
    executable: str = PIO_EXECUTABLE,
    env: dict[str, str] | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """Run a PlatformIO Core subcommand."""
    return await run_command(
        executable, [*pio_base_args(), *args], env=env, cwd=cwd,
    )
