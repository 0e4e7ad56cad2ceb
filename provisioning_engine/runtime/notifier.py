# provisioning_engine/runtime/notifier.py
"""Messaging API client (Telegram Bot API)."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Best-effort notifications; failures are logged, never raised."""

    def __init__(
        self,
        bot_token: Optional[str],
        api_url: str = "https://api.telegram.org",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.bot_token = bot_token
        self.base_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    def notify(self, channel: Optional[str], message: str) -> bool:
        """
        Send a message to a chat.

        Args:
            channel: Telegram chat id
            message: Text to send

        Returns:
            True if the API accepted the message, False otherwise
        """
        if not self.configured or not channel:
            logger.warning("[notify] Telegram not configured, notification skipped")
            return False

        try:
            response = self._session.post(
                f"{self.base_url}/bot{self.bot_token}/sendMessage",
                data={"chat_id": channel, "text": message},
                timeout=self.timeout,
            )
            if response.status_code != 200:
                logger.error(f"[notify] ❌ Telegram returned HTTP {response.status_code}")
                return False
            logger.info("[notify] ✅ notification sent")
            return True
        except requests.exceptions.RequestException as e:
            # Message only; the URL carries the bot token
            logger.error(f"[notify] ❌ notification failed: {type(e).__name__}")
            return False
