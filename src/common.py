"""Common utilities for stack automation."""

import logging
import signal
import subprocess
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    input_text: Optional[str] = None,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            input=input_text,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except FileNotFoundError:
        return 127, '', f'Command not found: {cmd[0]}'
    except OSError as e:
        return -1, '', str(e)


class CancelToken:
    """Cancellation flag observable from inside poll loops.

    wait() doubles as the poll sleep: it returns early when cancel() is
    called, so a shutdown signal aborts a readiness wait promptly.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason = ''

    def cancel(self, reason: str = 'cancelled') -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to seconds; True if cancelled meanwhile."""
        return self._event.wait(max(seconds, 0.0))


def install_signal_handlers(token: CancelToken) -> None:
    """Cancel the token on SIGINT/SIGTERM."""
    def _handle(signum, _frame):
        name = signal.Signals(signum).name
        logger.warning(f"Received {name}, cancelling after current step...")
        token.cancel(name)

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
