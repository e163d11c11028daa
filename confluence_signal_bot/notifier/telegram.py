from __future__ import annotations

import aiohttp
from typing import List, Optional
import logging

log = logging.getLogger("telegram")


class TelegramNotifier:
    def __init__(self, token: str, chat_ids: List[str], *, disable_web_page_preview: bool = True, timeout_s: int = 15):
        self.token = (token or "").strip()
        self.chat_ids = [str(x).strip() for x in (chat_ids or []) if str(x).strip()]
        self.disable_web_page_preview = disable_web_page_preview
        self.timeout_s = timeout_s

    def enabled(self) -> bool:
        return bool(self.token) and bool(self.chat_ids)

    async def send(self, text: str, *, chat_ids: Optional[List[str]] = None, parse_mode: Optional[str] = None) -> int:
        """Send to every chat; returns how many chats accepted the message."""
        if not self.enabled():
            return 0
        targets = [str(x).strip() for x in (chat_ids or self.chat_ids) if str(x).strip()]
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"
        delivered = 0
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_s)) as sess:
            for chat_id in targets:
                payload = {
                    "chat_id": chat_id,
                    "text": text,
                    "disable_web_page_preview": self.disable_web_page_preview,
                }
                if parse_mode:
                    payload["parse_mode"] = "MarkdownV2" if parse_mode.upper() == "MARKDOWNV2" else "HTML"
                try:
                    async with sess.post(url, json=payload) as resp:
                        if resp.status != 200:
                            body = await resp.text()
                            log.warning("telegram_send_failed chat_id=%s status=%s body=%s", chat_id, resp.status, body[:2000])
                            continue
                    delivered += 1
                except aiohttp.ClientError as e:
                    log.warning("telegram_send_exception chat_id=%s err=%s", chat_id, e)
        return delivered
