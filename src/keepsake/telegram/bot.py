"""Telegram bot integration for Keepsake."""

import logging

from telegram import Bot, Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..app import create_state_machine, create_store
from ..config import Settings
from ..logging import get_logger

logger = logging.getLogger(__name__)


WELCOME_MESSAGE = """
📒 *Keepsake*

I remember the little things you tell me.

*Try:*
• my birthday is on 15th Sept
• Adam's birthday is on 8th August
• I like pineapple
• what's my birthday?

Say *delete data* to make me forget everything about you.
"""

MAX_MESSAGE_LENGTH = 4096


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n... [truncated]"


class TelegramSender:
    """MessageSender that delivers replies through the Telegram Bot API."""

    def __init__(self, bot: Bot | None = None) -> None:
        self.bot = bot

    async def send(self, sender_id: str, text: str) -> None:
        if self.bot is None:
            raise RuntimeError("Telegram bot is not running")
        await self.bot.send_message(chat_id=sender_id, text=truncate_message(text))


class TelegramBot:
    """Telegram bot for Keepsake."""

    def __init__(
        self,
        token: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.token = token or self.settings.telegram_token
        if not self.token:
            raise ValueError("TELEGRAM_TOKEN not set")

        self.json_logger = get_logger()
        self.store = create_store(self.settings, self.json_logger)
        self.sender = TelegramSender()
        self.assistant = create_state_machine(
            self.settings, self.sender, store=self.store, json_logger=self.json_logger
        )
        self._app: Application | None = None

    def _get_chat_id(self, update: Update) -> str:
        """Get chat_id as string from update."""
        assert update.effective_chat is not None
        return str(update.effective_chat.id)

    def _get_display_name(self, update: Update) -> str:
        user = update.effective_user
        if user is None:
            return "User"
        return user.first_name or user.username or "User"

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start command."""
        assert update.message is not None
        chat_id = self._get_chat_id(update)

        self.json_logger.log("telegram_start", sender_id=chat_id)

        await update.message.reply_text(
            WELCOME_MESSAGE,
            parse_mode=ParseMode.MARKDOWN,
        )

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle incoming messages."""
        assert update.message is not None
        assert update.message.text is not None

        chat_id = self._get_chat_id(update)
        if self.sender.bot is None:
            self.sender.bot = context.bot

        try:
            await self.assistant.handle_message(
                chat_id,
                update.message.text,
                display_name=self._get_display_name(update),
            )
        except Exception:
            # Delivery failures are not retried here; the sender gets silence
            logger.exception("Error handling message from %s", chat_id)

    async def _post_init(self, application: Application) -> None:
        """Called after Application.initialize()."""
        self.sender.bot = application.bot

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        self.store.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.token)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        self._app.add_handler(CommandHandler("start", self._handle_start))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        app.run_polling()
