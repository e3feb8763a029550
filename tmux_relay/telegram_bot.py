"""Telegram channel: sends notifications and accepts relayed commands."""

import logging
import re
from typing import Optional, Callable, Awaitable

from telegram import Update, Bot
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

from .models import RelayResult, SessionRecord

logger = logging.getLogger(__name__)

# "<TOKEN> <command>": one separator after the token, command may span lines
RELAY_COMMAND_RE = re.compile(r"^([A-Z0-9]{8})\s(.*)$", re.DOTALL)

USAGE = "Invalid command format. Please use: /relay <TOKEN> <your command>"


def parse_relay_command(text: Optional[str]) -> Optional[tuple[str, str]]:
    """
    Split user input into (token, command_text).

    Whitespace before the token is ignored. Everything after the single
    separator following the token is the command, kept as typed.

    Returns:
        Tuple of (token, command) or None if the input is malformed
    """
    if not text:
        return None
    match = RELAY_COMMAND_RE.match(text.lstrip())
    if not match or not match.group(2).strip():
        return None
    return match.group(1), match.group(2)


def escape_markdown_v2(text: str) -> str:
    """Escape every MarkdownV2 special character in plain text."""
    escape_chars = r'\_*[]()~`>#+-=|{}.!'
    return "".join("\\" + c if c in escape_chars else c for c in text)


class TelegramBot:
    """Telegram bot for relaying commands into tmux sessions."""

    def __init__(
        self,
        token: str,
        allowed_chat_ids: Optional[list[int]] = None,
        allowed_user_ids: Optional[list[int]] = None,
    ):
        """
        Initialize the Telegram bot.

        Args:
            token: Telegram bot token from BotFather
            allowed_chat_ids: List of chat IDs allowed to use the bot (None = allow all)
            allowed_user_ids: List of user IDs allowed to use the bot (None = allow all)
        """
        self.token = token
        self.allowed_chat_ids = set(allowed_chat_ids) if allowed_chat_ids else None
        self.allowed_user_ids = set(allowed_user_ids) if allowed_user_ids else None
        self.application: Optional[Application] = None
        self.bot: Optional[Bot] = None

        # Callbacks into the relay core
        self._on_relay: Optional[Callable[[str, str], Awaitable[RelayResult]]] = None
        self._on_list_sessions: Optional[Callable[[], Awaitable[list[SessionRecord]]]] = None

    def set_relay_handler(self, handler: Callable[[str, str], Awaitable[RelayResult]]):
        """Set handler called with (token, command_text)."""
        self._on_relay = handler

    def set_list_sessions_handler(self, handler: Callable[[], Awaitable[list[SessionRecord]]]):
        """Set handler for listing live sessions."""
        self._on_list_sessions = handler

    def _is_allowed(self, chat_id: int, user_id: Optional[int] = None) -> bool:
        """Check if a chat/user is allowed to use the bot."""
        # Check user allowlist first (if configured)
        if self.allowed_user_ids is not None:
            if user_id is None or user_id not in self.allowed_user_ids:
                return False

        # Check chat allowlist (if configured)
        if self.allowed_chat_ids is not None:
            if chat_id not in self.allowed_chat_ids:
                return False

        return True

    def _check_allowed(self, update: Update) -> bool:
        user_id = update.effective_user.id if update.effective_user else None
        if self._is_allowed(update.effective_chat.id, user_id):
            return True
        logger.warning(f"Unauthorized: chat_id={update.effective_chat.id}, user_id={user_id}")
        return False

    async def _cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command."""
        if not self._check_allowed(update):
            await update.message.reply_text("Unauthorized.")
            return

        await update.message.reply_text(
            "tmux relay bot\n\n"
            "Commands:\n"
            "/relay <TOKEN> <command> - Type a command into the session for TOKEN\n"
            "/sessions - List live sessions\n"
            "/help - Show this message\n\n"
            "You can also send '<TOKEN> <command>' as a plain message."
        )

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /help command."""
        await self._cmd_start(update, context)

    async def _cmd_relay(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /relay <TOKEN> <command>."""
        if not self._check_allowed(update):
            await update.message.reply_text("Unauthorized.")
            return

        # Strip the "/relay" (or "/relay@botname") prefix, keep the rest verbatim
        parts = (update.message.text or "").split(maxsplit=1)
        await self._relay_text(update, parts[1] if len(parts) > 1 else "")

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle plain '<TOKEN> <command>' messages."""
        if not update.message or not update.message.text:
            return
        if not self._check_allowed(update):
            return
        if parse_relay_command(update.message.text) is None:
            # Not addressed to a session; ignore ordinary chatter
            return
        await self._relay_text(update, update.message.text)

    async def _relay_text(self, update: Update, text: str):
        parsed = parse_relay_command(text)
        if parsed is None:
            await update.message.reply_text(USAGE)
            return

        if not self._on_relay:
            await update.message.reply_text("Relay not configured.")
            return

        token, command = parsed
        logger.info(f"Handling command from Telegram: {command[:50]!r} with token {token}")
        try:
            result = await self._on_relay(token, command)
        except Exception:
            logger.exception(f"Error handling command for token {token}")
            await update.message.reply_text("An unexpected error occurred. Please check the logs.")
            return

        if result.success:
            await update.message.reply_text(
                f"✅ Command sent to session {result.session.tmux_session}: {command}"
            )
        else:
            await update.message.reply_text(f"❌ Failed to send command: {result.message}")

    async def _cmd_sessions(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /sessions command."""
        if not self._check_allowed(update):
            await update.message.reply_text("Unauthorized.")
            return

        if not self._on_list_sessions:
            await update.message.reply_text("Session listing not configured.")
            return

        sessions = await self._on_list_sessions()
        if not sessions:
            await update.message.reply_text("No live sessions.")
            return

        lines = ["Live sessions:\n"]
        for s in sessions:
            expires = s.expires.strftime("%Y-%m-%d %H:%M UTC")
            lines.append(f"{s.token} → {s.tmux_session} ({s.project or 'no project'}, expires {expires})")
        await update.message.reply_text("\n".join(lines))

    async def send_notification(
        self,
        chat_id: int,
        message: str,
        parse_mode: Optional[str] = None,
    ) -> Optional[int]:
        """
        Send a notification message.

        Args:
            chat_id: Chat to send to
            message: Message text
            parse_mode: Optional parse mode ("MarkdownV2", "HTML", or None for plain text)

        Returns:
            Message ID of sent message, or None on failure
        """
        if not self.bot:
            logger.error("Bot not initialized")
            return None

        try:
            msg = await self.bot.send_message(
                chat_id=chat_id,
                text=message,
                parse_mode=parse_mode,
            )
            return msg.message_id

        except Exception as e:
            # If markdown parsing fails, retry without parse_mode
            if parse_mode:
                logger.warning(f"Markdown parsing failed, retrying as plain text: {e}")
                try:
                    # Strip markdown escape chars for plain text fallback
                    plain_message = message.replace('\\', '')
                    msg = await self.bot.send_message(chat_id=chat_id, text=plain_message)
                    return msg.message_id
                except Exception as e2:
                    logger.error(f"Failed to send plain text message: {e2}")
                    return None
            logger.error(f"Failed to send Telegram message: {e}")
            return None

    async def start(self):
        """Start the bot."""
        self.application = (
            Application.builder()
            .token(self.token)
            .build()
        )

        self.bot = self.application.bot

        # Register handlers
        self.application.add_handler(CommandHandler("start", self._cmd_start))
        self.application.add_handler(CommandHandler("help", self._cmd_help))
        self.application.add_handler(CommandHandler(["relay", "claude"], self._cmd_relay))
        self.application.add_handler(CommandHandler("sessions", self._cmd_sessions))

        # Bare "<TOKEN> <command>" messages
        self.application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message))

        # Start polling
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()

        logger.info("Telegram bot started")

    async def stop(self):
        """Stop the bot."""
        if self.application:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
            logger.info("Telegram bot stopped")
