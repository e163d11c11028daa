from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..models import Signal, utc_ms

log = logging.getLogger("webhook")


def format_price(x: Optional[float]) -> Optional[float]:
    """Trim float noise (1.19600000001 -> 1.196) before it reaches JSON."""
    if x is None:
        return None
    return float(f"{x:.8f}")


def signal_payload(sig: Signal, secret: str = "") -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": "signal",
        "signal_id": sig.signal_id,
        "symbol": sig.symbol,
        "direction": sig.direction,
        "interval": sig.interval,
        "profile": sig.profile,
        "timestamp_ms": utc_ms(sig.timestamp),
        "entry_price": format_price(sig.entry_price),
        "stop_loss": format_price(sig.stop_loss),
        "take_profit": format_price(sig.take_profit),
        "confidence": sig.confidence_percent,
        "tier": sig.confidence_tier,
        "conditions_met": sig.conditions_met,
        "conditions_total": sig.conditions_total,
        "reasons": list(sig.reasons),
    }
    if sig.candle_time is not None:
        payload["candle_time_ms"] = utc_ms(sig.candle_time)
    if sig.stop_pct is not None:
        payload["stop_pct"] = sig.stop_pct
    if sig.target_pct is not None:
        payload["target_pct"] = sig.target_pct
    if sig.target_pips is not None:
        payload["target_pips"] = sig.target_pips
    if secret:
        payload["secret"] = secret
    return payload


class WebhookNotifier:
    def __init__(self, *, enabled: bool, url: str, secret: str, timeout_s: int, headers: dict):
        self.enabled = bool(enabled)
        self.url = url or ""
        self.secret = secret or ""
        self.timeout_s = int(timeout_s) if timeout_s is not None else 10
        self.headers = headers or {}

    async def post(self, payload: Dict[str, Any]) -> bool:
        if not self.enabled or not self.url:
            return False
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_s)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, data=body, headers={"Content-Type": "application/json", **self.headers}) as resp:
                    if resp.status >= 400:
                        text = await resp.text()
                        log.warning("webhook_bad_status status=%s body=%s", resp.status, text[:200])
                        return False
            return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # Log but do not crash
            log.warning("webhook_post_failed err=%s", e)
            return False

    async def send_signal(self, sig: Signal) -> bool:
        return await self.post(signal_payload(sig, self.secret))

    async def send_delete(self, signal_id: str) -> bool:
        payload: Dict[str, Any] = {"type": "delete", "signal_id": signal_id}
        if self.secret:
            payload["secret"] = self.secret
        return await self.post(payload)
