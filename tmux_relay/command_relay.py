"""Relays chat commands into the tmux session bound to a token."""

import logging
from datetime import datetime
from typing import Callable, Optional

from .models import RelayResult, utcnow
from .session_store import SessionStore
from .tmux_controller import ContextNotFoundError, DeliveryError, TmuxController

logger = logging.getLogger(__name__)

MSG_EMPTY_COMMAND = "empty command"
MSG_NOT_FOUND = "token not found or expired"
MSG_NO_TARGET = "no target session"
MSG_TARGET_GONE = "target session no longer active"
MSG_DELIVERY_FAILED = "delivery failed"


class CommandRelay:
    """
    Validates a token and types a command into its tmux session.

    Expected failures (empty command, unknown or expired token, dead tmux
    session, tmux errors) come back as a RelayResult. Store errors propagate.

    Relays for one token are not serialized here: two concurrent commands
    against the same session can interleave their keystrokes. Callers that
    need ordering must serialize per token.
    """

    def __init__(
        self,
        store: SessionStore,
        tmux: TmuxController,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.tmux = tmux
        self.clock = clock or utcnow

    def relay_command(self, token: str, command_text: str) -> RelayResult:
        """
        Deliver command_text verbatim, followed by Enter, to the token's session.

        Args:
            token: Session token from the chat message
            command_text: Command to type

        Returns:
            RelayResult with the session on success, or a failure message
        """
        if not command_text:
            return RelayResult(success=False, message=MSG_EMPTY_COMMAND)

        session = self.store.find_by_token(token)
        if session is None:
            # Drop any expired records still holding this token
            self.store.sweep_expired(token=token)
            logger.info(f"Relay rejected: token {token} not found or expired")
            return RelayResult(success=False, message=MSG_NOT_FOUND)

        if session.is_expired(self.clock()):
            self.store.remove(session.id)
            logger.info(f"Relay rejected: session {session.id} expired")
            return RelayResult(success=False, message=MSG_NOT_FOUND)

        if not session.has_target:
            logger.warning(f"Relay rejected: session {session.id} has no tmux target")
            return RelayResult(success=False, message=MSG_NO_TARGET)

        if not self.tmux.session_exists(session.tmux_session):
            logger.warning(f"Relay rejected: tmux session {session.tmux_session} is gone")
            return RelayResult(success=False, message=MSG_TARGET_GONE)

        try:
            self.tmux.send_input(session.tmux_session, command_text)
        except ContextNotFoundError:
            logger.warning(f"tmux session {session.tmux_session} vanished before delivery")
            return RelayResult(success=False, message=MSG_TARGET_GONE)
        except DeliveryError as e:
            logger.error(f"Delivery to {session.tmux_session} failed for session {session.id}: {e}")
            return RelayResult(success=False, message=f"{MSG_DELIVERY_FAILED}: {e}")

        logger.info(f"Relayed command to {session.tmux_session} (session {session.id}): {command_text[:50]}")
        return RelayResult(success=True, session=session)
