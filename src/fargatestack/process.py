"""
Async execution of external commands.

Every collaborator (pulumi, esc, git, the container runtime) is driven
through run_command so output is captured, masked and logged the same
way, and so cancellation of an operation kills the in-flight process.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from .logging_config import SubprocessLogHandler, mask_sensitive_data
from .models import CommandError, CommandResult

logger = logging.getLogger(__name__)


async def run_command(
    cmd: List[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
    input_text: Optional[str] = None,
    log_handler: Optional[SubprocessLogHandler] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run an external command and wait for it to finish.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        env: Extra environment variables layered over os.environ
        input_text: Text written to the process stdin
        log_handler: Handler receiving the command line and output
        check: Raise CommandError on a non-zero exit code

    Returns:
        CommandResult with captured output

    Raises:
        CommandError: If check is set and the command failed
    """
    loop = asyncio.get_running_loop()
    start_time = loop.time()

    process_env = None
    if env:
        process_env = os.environ.copy()
        process_env.update(env)

    if log_handler:
        log_handler.log_command(cmd)

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
        env=process_env,
    )

    try:
        stdout, stderr = await process.communicate(
            input_text.encode("utf-8") if input_text is not None else None
        )
    except asyncio.CancelledError:
        if process.returncode is None:
            logger.warning(f"Cancelled, killing {cmd[0]} (pid {process.pid})")
            process.kill()
            await process.wait()
        raise

    result = CommandResult(
        command=list(cmd),
        exit_code=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
        duration=loop.time() - start_time,
    )

    if log_handler:
        log_handler.log_output(result.stdout)
        log_handler.log_output(result.stderr, logging.WARNING)
        log_handler.log_completion(result.exit_code, result.duration)

    logger.debug(f"{cmd[0]} {cmd[1] if len(cmd) > 1 else ''} exited with {result.exit_code}")

    if check and not result.success:
        raise CommandError(result.command, result.exit_code, mask_sensitive_data(result.stderr))

    return result
