"""tmux operations for locating sessions and typing relayed commands."""

import logging
import subprocess
import time
from typing import Optional

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """Raised when keystrokes could not be delivered to a tmux session."""


class TmuxTimeoutError(DeliveryError):
    """Raised when a tmux command exceeds its timeout."""


class ContextNotFoundError(DeliveryError):
    """Raised when the target tmux session does not exist."""


class TmuxController:
    """Controls the local tmux server on behalf of the relay."""

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}

        # Load timeout configuration with fallbacks
        timeouts = self.config.get("timeouts", {})
        tmux_timeouts = timeouts.get("tmux", {})

        self.command_timeout_seconds = tmux_timeouts.get("command_timeout_seconds", 3)
        self.send_keys_settle_seconds = tmux_timeouts.get("send_keys_settle_seconds", 0.3)

    def _run_tmux(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a tmux command with the configured timeout."""
        cmd = ["tmux"] + list(args)
        logger.debug(f"Running tmux command: {' '.join(cmd)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
            timeout=self.command_timeout_seconds,
        )

    @staticmethod
    def _exact(session_name: str) -> str:
        """Target spec matching only this session name, never a prefix or pattern."""
        return f"={session_name}"

    def current_session(self) -> Optional[str]:
        """
        Name of the tmux session this process is attached to.

        Best-effort: returns None when tmux is not installed, not running, the
        process is outside tmux, or the query times out.
        """
        try:
            result = self._run_tmux("display-message", "-p", "#S", check=False)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Could not query current tmux session: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def session_exists(self, session_name: str) -> bool:
        """Check if a tmux session exists."""
        try:
            result = self._run_tmux("has-session", "-t", self._exact(session_name), check=False)
        except subprocess.TimeoutExpired:
            logger.error(f"Timeout checking tmux session {session_name}")
            return False
        except OSError as e:
            logger.error(f"Failed to run tmux: {e}")
            return False
        return result.returncode == 0

    def send_input(self, session_name: str, text: str) -> None:
        """
        Type text into a tmux session, then press Enter.

        The text goes through ``send-keys -l`` as a single argument, so tmux
        types it literally and key names like ``C-c`` are not interpreted.

        Args:
            session_name: Target session name
            text: Text to type

        Raises:
            ContextNotFoundError: Session does not exist
            TmuxTimeoutError: A tmux call timed out
            DeliveryError: tmux rejected the keystrokes
        """
        if not self.session_exists(session_name):
            raise ContextNotFoundError(f"tmux session {session_name} does not exist")

        try:
            self._run_tmux("send-keys", "-t", self._exact(session_name), "-l", "--", text)
            # Gap between the text and Enter so TUIs don't treat Enter as part of a paste
            time.sleep(self.send_keys_settle_seconds)
            self._run_tmux("send-keys", "-t", self._exact(session_name), "Enter")
        except subprocess.TimeoutExpired:
            logger.error(f"Timeout sending input to {session_name}")
            raise TmuxTimeoutError(
                f"tmux did not respond within {self.command_timeout_seconds}s"
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"tmux exited with {e.returncode}"
            logger.error(f"Failed to send input to {session_name}: {detail}")
            raise DeliveryError(detail) from e
        except OSError as e:
            logger.error(f"Failed to run tmux: {e}")
            raise DeliveryError(str(e)) from e

        logger.info(f"Sent input to {session_name}: {text[:50]}...")

    def capture_pane(self, session_name: str, lines: int = 50) -> Optional[str]:
        """
        Capture recent output from a session's pane.

        Args:
            session_name: Session to capture from
            lines: Number of lines to capture

        Returns:
            Captured text or None on error
        """
        try:
            result = self._run_tmux(
                "capture-pane",
                "-t", self._exact(session_name),
                "-p",  # Print to stdout
                "-S", f"-{lines}",  # Start from N lines back
            )
            return result.stdout

        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to capture pane: {e.stderr}")
            return None
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f"Failed to capture pane for {session_name}: {e}")
            return None
