"""
Notification Service - Telegram alerts for agents and admins.

Best effort: delivery failures are logged and counted, never raised.
"""
import logging
from typing import Optional

from aiogram import Bot

from app.core.config import settings

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends Telegram messages from the automation engine and background tasks."""

    def __init__(self, token: Optional[str] = None, admin_ids: Optional[list[int]] = None):
        self.token = token if token is not None else settings.TELEGRAM_BOT_TOKEN
        self.admin_ids = admin_ids if admin_ids is not None else settings.TELEGRAM_ADMIN_IDS
        self._bot = None

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.admin_ids)

    @property
    def bot(self) -> Optional[Bot]:
        if self._bot is None:
            if not self.token:
                return None
            self._bot = Bot(token=self.token)
        return self._bot

    async def send_direct(self, telegram_id: str | int, text: str) -> bool:
        """Send a message to a specific Telegram user."""
        if not self.bot:
            return False

        try:
            await self.bot.send_message(telegram_id, text, parse_mode="HTML")
            return True
        except Exception as e:
            logger.error(f"Failed to send notification to {telegram_id}: {e}")
            return False

    async def notify_admins(self, text: str) -> int:
        """Broadcast a message to all configured admins. Returns the delivered count."""
        if not self.enabled:
            logger.debug("Telegram notifications disabled (no token or admin IDs)")
            return 0

        success_count = 0
        for admin_id in self.admin_ids:
            if await self.send_direct(admin_id, text):
                success_count += 1
        return success_count

    async def close(self):
        """Close the bot session."""
        if self._bot:
            await self._bot.session.close()
            self._bot = None
