################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        ui_utils.py
# @module:      docker_volume_backup.helpers.ui_utils
# @description: Subprocess wrapper and rich console helpers
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
CLI utilities for docker-volume-backup.

Rich-based helpers for console output and the single subprocess wrapper
used for every call to the container runtime.
"""

import subprocess
from typing import List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .logging import get_logger

console = Console()
logger = get_logger(__name__)


class SubprocessError(Exception):
    """
    A subprocess exited non-zero or ran into its timeout.

    Attributes:
        cmd: Command that was executed
        returncode: Exit code, None when the command timed out
        stderr: Captured standard error (stripped)
        timed_out: True when the timeout was hit
    """

    def __init__(
        self,
        cmd: Sequence[str],
        returncode: Optional[int],
        stderr: str = "",
        stdout: str = "",
        timed_out: bool = False,
    ):
        self.cmd = list(cmd) if not isinstance(cmd, str) else [cmd]
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        self.stdout = stdout or ""
        self.timed_out = timed_out
        super().__init__(self._describe())

    def _describe(self) -> str:
        command = " ".join(self.cmd)
        if self.timed_out:
            return f"'{command}' timed out"
        detail = f": {self.stderr}" if self.stderr else ""
        return f"'{command}' exited with code {self.returncode}{detail}"


def run_command(
    cmd: List[str],
    description: str,
    timeout: Optional[float] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """
    Run a command, capturing text output.

    Args:
        cmd: Command and arguments
        description: Short human readable description for the debug log
        timeout: Seconds before the command is killed (None = no limit)
        check: Raise SubprocessError on non-zero exit

    Returns:
        The completed process

    Raises:
        SubprocessError: Non-zero exit (when check is set) or timeout
        OSError: The executable could not be started
    """
    logger.debug(f"{description}: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            # Terminal signals go to this process only, never to the docker client.
            start_new_session=True,
        )
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode(errors="ignore") if isinstance(e.stderr, bytes) else (e.stderr or "")
        raise SubprocessError(cmd, None, stderr=stderr, timed_out=True) from e

    if check and result.returncode != 0:
        raise SubprocessError(cmd, result.returncode, stderr=result.stderr, stdout=result.stdout)
    return result


def print_success(message: str):
    """Print success message with green checkmark"""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_error(message: str):
    """Print error message with red X"""
    console.print(f"[red]✗[/red] {escape(message)}")


def print_warning(message: str):
    """Print warning message with yellow warning symbol"""
    console.print(f"[yellow]⚠[/yellow]  {escape(message)}")


def print_info(message: str):
    """Print info message with cyan arrow"""
    console.print(f"[cyan]→[/cyan] {escape(message)}")


def create_table(title: str, columns: List[tuple]) -> Table:
    """
    Create a styled Rich table

    Args:
        title: Table title
        columns: List of (name, style, width) tuples, width may be None

    Returns:
        Rich Table instance
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for name, style, width in columns:
        table.add_column(name, style=style, width=width)
    return table
