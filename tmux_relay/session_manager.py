"""Relay session lifecycle: token allocation, creation, removal and sweeping."""

import logging
import secrets
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional

from .models import (
    NO_TARGET_SESSION,
    SESSION_TTL,
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
    Notification,
    SessionRecord,
    utcnow,
)
from .session_store import SessionStore, StoreWriteError
from .tmux_controller import TmuxController

logger = logging.getLogger(__name__)


class TokenAllocationError(StoreWriteError):
    """Raised when no free token could be found within max_token_attempts."""


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Random uppercase alphanumeric token."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


class SessionManager:
    """Creates and retires relay sessions."""

    def __init__(
        self,
        store: SessionStore,
        tmux: TmuxController,
        config: Optional[dict] = None,
        clock: Optional[Callable[[], datetime]] = None,
        token_factory: Callable[[], str] = generate_token,
    ):
        self.store = store
        self.tmux = tmux
        self.config = config or {}
        self.clock = clock or utcnow
        self.token_factory = token_factory

        sessions_config = self.config.get("sessions", {})
        self.max_token_attempts = sessions_config.get("max_token_attempts", 10)

        # Token check + persist must not interleave within this process
        self._create_lock = threading.Lock()

    def _allocate_token(self) -> str:
        """Generate a token no live session holds."""
        for attempt in range(1, self.max_token_attempts + 1):
            token = self.token_factory()
            if not self.store.token_in_use(token):
                return token
            logger.warning(f"Token collision on attempt {attempt}, regenerating")
        raise TokenAllocationError(
            f"No free token after {self.max_token_attempts} attempts"
        )

    def resolve_tmux_session(
        self,
        notification: Notification,
        tmux_session: Optional[str] = None,
    ) -> str:
        """
        Pick the tmux session a new record should target.

        Explicit value first, then whatever the notification metadata carries,
        then the tmux session this process runs in, then the sentinel.
        """
        if tmux_session:
            return tmux_session
        metadata = notification.metadata or {}
        if metadata.get("tmux_session"):
            return metadata["tmux_session"]
        return self.tmux.current_session() or NO_TARGET_SESSION

    def create_session(
        self,
        notification: Notification,
        channel: str,
        tmux_session: Optional[str] = None,
    ) -> SessionRecord:
        """
        Create and persist a session for an outbound notification.

        Args:
            notification: The notification being dispatched
            channel: Channel tag stored on the record (telegram, api)
            tmux_session: Target tmux session if already known

        Returns:
            The persisted record, carrying the token to show the user

        Raises:
            TokenAllocationError: No free token found
            StoreWriteError: Record could not be persisted
        """
        target = self.resolve_tmux_session(notification, tmux_session)

        with self._create_lock:
            token = self._allocate_token()
            created = self.clock()
            record = SessionRecord(
                id=str(uuid.uuid4()),
                token=token,
                type=channel,
                created=created,
                expires=created + SESSION_TTL,
                tmux_session=target,
                project=notification.project,
                notification=notification.to_dict(),
            )
            self.store.create(record)

        if target == NO_TARGET_SESSION:
            logger.warning(f"Session {record.id} created without a tmux target; commands will be rejected")
        logger.info(f"Created session {record.id} (channel={channel}, tmux={target})")
        return record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return self.store.get(session_id)

    def list_sessions(self) -> list[SessionRecord]:
        """Live sessions, oldest first."""
        return self.store.list_sessions()

    def remove_session(self, session_id: str) -> bool:
        removed = self.store.remove(session_id)
        if removed:
            logger.info(f"Removed session {session_id}")
        return removed

    def sweep_expired(self) -> int:
        """Housekeeping: delete every expired record."""
        return self.store.sweep_expired()
