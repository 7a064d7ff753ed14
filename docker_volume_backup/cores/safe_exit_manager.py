################################################################################
# DOCKER-VOLUME-BACKUP
#
# @file:        safe_exit_manager.py
# @module:      docker_volume_backup.cores.safe_exit_manager
# @description: Signal driven cancellation that never strands stopped containers
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT License: see LICENSE or https://opensource.org/licenses/MIT
################################################################################

"""
Graceful cancellation for backup runs.

The first SIGINT/SIGTERM only requests cancellation: the fleet runner stops
between containers and the backup manager stops between mounts, restarting
every container it stopped. A second signal falls back to the original
handler (KeyboardInterrupt for SIGINT).
"""

from __future__ import annotations

import signal
import threading
from typing import Dict, Optional

from ..helpers.logging import get_logger
from ..types import ContainerInfo

logger = get_logger(__name__)


class SafeExitManager:
    """
    Cancellation flag plus the set of containers currently stopped by this run.
    """

    def __init__(self):
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._stopped: Dict[str, ContainerInfo] = {}
        self._original_sigint = None
        self._original_sigterm = None
        self._installed = False

    # --------------- Cancellation ---------------

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def request_cancel(self, reason: str = "cancel requested") -> None:
        if not self._cancel.is_set():
            logger.warning(f"Cancelling run ({reason}); stopped containers will be restarted")
        self._cancel.set()

    # --------------- Stopped container tracking ---------------

    def register_stopped(self, container: ContainerInfo) -> None:
        with self._lock:
            self._stopped[container.id] = container

    def unregister_stopped(self, container: ContainerInfo) -> None:
        with self._lock:
            self._stopped.pop(container.id, None)

    def stopped_containers(self) -> list:
        with self._lock:
            return list(self._stopped.values())

    # --------------- Signals ---------------

    def install_handlers(self) -> None:
        """Install SIGINT/SIGTERM handlers (main thread only)."""
        if self._installed:
            return
        self._original_sigint = signal.signal(signal.SIGINT, self._signal_handler)
        self._original_sigterm = signal.signal(signal.SIGTERM, self._signal_handler)
        self._installed = True

    def restore_handlers(self) -> None:
        if not self._installed:
            return
        signal.signal(signal.SIGINT, self._original_sigint or signal.SIG_DFL)
        signal.signal(signal.SIGTERM, self._original_sigterm or signal.SIG_DFL)
        self._installed = False

    def _signal_handler(self, signum: int, frame: Optional[object]) -> None:
        name = signal.Signals(signum).name
        if self._cancel.is_set():
            logger.error(f"Received {name} again, aborting")
            self.restore_handlers()
            if signum == signal.SIGINT:
                raise KeyboardInterrupt
            raise SystemExit(128 + signum)
        self.request_cancel(f"received {name}")
