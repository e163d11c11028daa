from __future__ import annotations

import logging
from typing import List, Tuple

from .config import Config
from .formatters import format_signal, format_status
from .models import Signal
from .notifier.telegram import TelegramNotifier
from .notifier.webhook import WebhookNotifier

log = logging.getLogger("publisher")


class Publisher:
    """Presentation side of the runner: receives accepted signals, per-symbol
    status changes and dismissals. Implementations must not raise for
    delivery failures."""

    async def publish(self, signal: Signal) -> None:
        raise NotImplementedError

    async def status(self, symbol: str, status: str, detail: str = "") -> None:
        raise NotImplementedError

    async def delete(self, signal_id: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryPublisher(Publisher):
    """Records every call; for tests and for hosts that render the state themselves."""

    def __init__(self) -> None:
        self.published: List[Signal] = []
        self.statuses: List[Tuple[str, str, str]] = []
        self.deleted: List[str] = []

    async def publish(self, signal: Signal) -> None:
        self.published.append(signal)

    async def status(self, symbol: str, status: str, detail: str = "") -> None:
        self.statuses.append((symbol, status, detail))

    async def delete(self, signal_id: str) -> None:
        self.deleted.append(signal_id)

    def statuses_for(self, symbol: str) -> List[str]:
        return [st for sym, st, _ in self.statuses if sym == symbol]


class NotifierPublisher(Publisher):
    """Fans signals out to Telegram and the webhook."""

    def __init__(self, cfg: Config):
        self.cfg = cfg
        self.tg = TelegramNotifier(
            token=cfg.telegram.token if cfg.telegram.enabled else "",
            chat_ids=cfg.telegram.chat_ids,
            disable_web_page_preview=cfg.telegram.disable_web_page_preview,
        )
        self.webhook = WebhookNotifier(
            enabled=cfg.webhook.enabled,
            url=cfg.webhook.url,
            secret=cfg.webhook.secret,
            timeout_s=cfg.webhook.timeout_s,
            headers=cfg.webhook.headers or {},
        )

    async def publish(self, signal: Signal) -> None:
        if self.webhook.enabled:
            ok = await self.webhook.send_signal(signal)
            if not ok:
                log.warning("webhook_send_failed symbol=%s signal_id=%s", signal.symbol, signal.signal_id)

        if not self.tg.enabled():
            return
        alerts = self.cfg.alerts
        msg = format_signal(signal, alerts, detail_level=alerts.detail_level)
        sent = await self.tg.send(msg, parse_mode=alerts.parse_mode)
        log.info("telegram_signal_sent symbol=%s signal_id=%s chats=%d", signal.symbol, signal.signal_id, sent)

    async def status(self, symbol: str, status: str, detail: str = "") -> None:
        log.debug("symbol_status symbol=%s status=%s detail=%s", symbol, status, detail)
        if self.cfg.telegram.send_status and self.tg.enabled() and status in ("no_data", "error"):
            await self.tg.send(format_status(symbol, status, detail, self.cfg.alerts), parse_mode=self.cfg.alerts.parse_mode)

    async def delete(self, signal_id: str) -> None:
        if self.webhook.enabled:
            await self.webhook.send_delete(signal_id)
        log.info("signal_deleted signal_id=%s", signal_id)

    async def announce(self, text: str) -> None:
        if self.tg.enabled():
            await self.tg.send(text)
