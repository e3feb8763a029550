"""Dispatches agent notifications to Telegram, creating a relay session for each."""

import asyncio
import logging
import re
from typing import Optional

from .models import NO_TARGET_SESSION, Notification, SessionRecord
from .session_manager import SessionManager
from .telegram_bot import TelegramBot, escape_markdown_v2
from .tmux_controller import TmuxController

logger = logging.getLogger(__name__)

CHANNEL_TELEGRAM = "telegram"

QUESTION_PREVIEW_CHARS = 500
RESPONSE_PREVIEW_CHARS = 1000

# Regex to match ANSI escape codes (comprehensive)
ANSI_ESCAPE_RE = re.compile(
    r'\x1b\[[0-9;?]*[a-zA-Z]|'  # CSI sequences (including private modes like ?2026h)
    r'\x1b\][^\x07]*\x07|'       # OSC sequences (title, etc.)
    r'\x1b[PX^_].*?\x1b\\|'      # DCS, SOS, PM, APC sequences
    r'\x1b[\(\)][AB012]|'        # Character set selection
    r'\x1b[=>78DMEHc]|'          # Keypad modes, save/restore cursor, single-char commands
    r'[\x00-\x08\x0b\x0c\x0e-\x1f]'  # Other control characters
)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes and control characters from text."""
    text = ANSI_ESCAPE_RE.sub('', text)
    # Clean up multiple blank lines
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text


def _quote(text: str, limit: int) -> str:
    """MarkdownV2 block quote of the first `limit` chars of text."""
    lines = text[:limit].splitlines() or [""]
    return "\n".join(">" + escape_markdown_v2(line) for line in lines)


def format_notification(notification: Notification, token: str) -> str:
    """Build the MarkdownV2 chat message announcing a session token."""
    if notification.is_completed:
        header = "✅ *Task Completed*"
    else:
        header = "⏳ *Waiting for Input*"

    parts = [header]
    parts.append(f"*Project:*\n{escape_markdown_v2(notification.project or 'unknown')}")
    parts.append(f"*Session Token:*\n`{token}`")

    metadata = notification.metadata or {}
    if metadata.get("user_question"):
        parts.append(f"*Your Question:*\n{_quote(metadata['user_question'], QUESTION_PREVIEW_CHARS)}")
    if metadata.get("assistant_response"):
        parts.append(f"*Response:*\n{_quote(metadata['assistant_response'], RESPONSE_PREVIEW_CHARS)}")

    parts.append(f"To send a new command, use: `/relay {token} <your command>`")
    return "\n\n".join(parts)


class Notifier:
    """Creates a relay session per notification and announces its token."""

    def __init__(
        self,
        session_manager: SessionManager,
        tmux: TmuxController,
        telegram_bot: Optional[TelegramBot] = None,
        chat_id: Optional[int] = None,
        capture_lines: int = 40,
    ):
        self.session_manager = session_manager
        self.tmux = tmux
        self.telegram = telegram_bot
        self.chat_id = chat_id
        self.capture_lines = capture_lines

    @property
    def is_configured(self) -> bool:
        return self.telegram is not None and self.chat_id is not None

    def _with_pane_context(self, notification: Notification, tmux_session: str) -> Notification:
        """Fill in metadata from the tmux pane when the hook sent none."""
        if notification.metadata or tmux_session == NO_TARGET_SESSION:
            return notification

        pane = self.tmux.capture_pane(tmux_session, lines=self.capture_lines)
        response = strip_ansi(pane).strip() if pane else ""
        return Notification(
            type=notification.type,
            project=notification.project,
            message=notification.message,
            metadata={
                "user_question": notification.message,
                "assistant_response": response or notification.message,
                "tmux_session": tmux_session,
            },
        )

    def prepare(self, notification: Notification, tmux_session: Optional[str] = None) -> SessionRecord:
        """Resolve the target, enrich metadata and persist the session (blocking)."""
        target = self.session_manager.resolve_tmux_session(notification, tmux_session)
        notification = self._with_pane_context(notification, target)
        return self.session_manager.create_session(notification, CHANNEL_TELEGRAM, tmux_session=target)

    async def notify(
        self,
        notification: Notification,
        tmux_session: Optional[str] = None,
    ) -> Optional[SessionRecord]:
        """
        Create a session for the notification and send its token to Telegram.

        The session is removed again if the message cannot be sent.

        Args:
            notification: Notification from the agent hook
            tmux_session: Target tmux session if the caller already knows it

        Returns:
            The live session record, or None if the send failed
        """
        if not self.is_configured:
            logger.warning("Telegram channel not configured; notification dropped")
            return None

        record = await asyncio.to_thread(self.prepare, notification, tmux_session)
        message = format_notification(record_notification(record), record.token)

        msg_id = await self.telegram.send_notification(
            chat_id=self.chat_id,
            message=message,
            parse_mode="MarkdownV2",
        )
        if msg_id is None:
            logger.error(f"Failed to send notification, rolling back session {record.id}")
            await asyncio.to_thread(self.session_manager.remove_session, record.id)
            return None

        logger.info(f"Telegram notification sent successfully, session: {record.id}")
        return record


def record_notification(record: SessionRecord) -> Notification:
    """Notification stored on a session record."""
    return Notification.from_dict(record.notification)
