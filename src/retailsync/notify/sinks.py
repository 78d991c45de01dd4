"""
Notification sinks: where order change messages are delivered.

A sink exposes ``async notify(change)`` and raises on delivery failure;
the notifier isolates those failures per change.
"""
import asyncio
import logging
import time
from typing import Callable, Optional, Protocol, runtime_checkable

import httpx
from telegram import Bot

from retailsync.config import Settings
from retailsync.core.records import Change, ChangeKind
from retailsync.exceptions import NotificationError
from retailsync.notify.formatting import change_title, format_order_message
from retailsync.upstream.auth import EXPIRY_MARGIN_SECONDS

logger = logging.getLogger(__name__)

LARK_BASE_URL = "https://open.larksuite.com/open-apis"


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol for notification delivery implementations."""

    name: str

    async def notify(self, change: Change) -> None:
        """Deliver one change notification. Raises on failure."""
        ...

    async def aclose(self) -> None:
        """Release connections held by the sink."""
        ...


class LoggingSink:
    """Logs notifications only. Used when no messaging sink is configured."""

    name = "log"

    async def notify(self, change: Change) -> None:
        logger.info("Order notification:\n%s", format_order_message(change))

    async def aclose(self) -> None:
        pass


class TelegramSink:
    """Sends plain-text messages to one chat via python-telegram-bot."""

    name = "telegram"

    def __init__(self, token: str, chat_id: int, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self._owns_bot = bot is None
        self._bot = bot or Bot(token=token)
        self._initialized = bot is not None

    async def notify(self, change: Change) -> None:
        if not self._initialized:
            await self._bot.initialize()
            self._initialized = True
        await self._bot.send_message(chat_id=self.chat_id, text=format_order_message(change))

    async def aclose(self) -> None:
        if self._owns_bot and self._initialized:
            await self._bot.shutdown()


class LarkSink:
    """Posts an interactive card to a Lark group chat."""

    name = "lark"

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        chat_id: str,
        http: Optional[httpx.AsyncClient] = None,
        base_url: str = LARK_BASE_URL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.chat_id = chat_id
        self.base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=30.0)
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _tenant_token(self) -> str:
        """Cached tenant token, refreshed a minute before it expires."""
        async with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token
            self._token, expire = await self._request_token()
            self._expires_at = self._clock() + max(expire - EXPIRY_MARGIN_SECONDS, 0)
            return self._token

    async def _request_token(self):
        response = await self._http.post(
            f"{self.base_url}/auth/v3/tenant_access_token/internal",
            json={"app_id": self.app_id, "app_secret": self.app_secret},
        )
        if response.status_code != 200:
            raise NotificationError(f"Lark token request failed ({response.status_code})")
        payload = response.json()
        token = payload.get("tenant_access_token")
        if not token:
            raise NotificationError("Lark token response has no tenant_access_token")
        return token, float(payload.get("expire", 7200))

    def build_card(self, change: Change) -> dict:
        title = f"{change_title(change)} - {change.record.get('code', '')}"
        return {
            "chat_id": self.chat_id,
            "msg_type": "interactive",
            "card": {
                "config": {"wide_screen_mode": True},
                "header": {
                    "title": {"tag": "plain_text", "content": title},
                    "template": "green" if change.kind is ChangeKind.NEW else "orange",
                },
                "elements": [
                    {
                        "tag": "div",
                        "text": {"tag": "lark_md", "content": format_order_message(change, markdown=True)},
                    }
                ],
            },
        }

    async def notify(self, change: Change) -> None:
        token = await self._tenant_token()
        response = await self._http.post(
            f"{self.base_url}/message/v4/send",
            json=self.build_card(change),
            headers={"Authorization": f"Bearer {token}"},
        )
        body = response.json() if response.content else {}
        if response.status_code != 200 or body.get("code", 0) != 0:
            # the token may have been revoked; fetch a fresh one next time
            self._token = None
            raise NotificationError(
                f"Lark send failed for {change.key}: {response.status_code} {body.get('msg', '')}"
            )


def build_sink(settings: Settings) -> NotificationSink:
    """Pick the configured sink: Telegram, then Lark, else logging only."""
    if settings.telegram_bot_token and settings.telegram_chat_id:
        return TelegramSink(settings.telegram_bot_token, settings.telegram_chat_id)
    if settings.lark_app_id and settings.lark_app_secret and settings.lark_chat_id:
        return LarkSink(settings.lark_app_id, settings.lark_app_secret, settings.lark_chat_id)
    logger.info("No notification sink configured, order changes will only be logged")
    return LoggingSink()
