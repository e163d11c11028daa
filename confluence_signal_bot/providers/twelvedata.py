from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import DataUnavailable
from ..models import Candle, CandleSeries
from .base import ensure_filled, parse_interval

log = logging.getLogger("twelvedata")

BASE_URL = "https://api.twelvedata.com/time_series"
_MAX_OUTPUTSIZE = 5000


def twelvedata_symbol(symbol: str) -> str:
    """'EUR/USD:FX' -> 'EUR/USD'; the suffix only tags the asset class locally."""
    return symbol.split(":")[0].strip().upper()


def twelvedata_interval(interval: str) -> str:
    n, unit = parse_interval(interval)
    if unit == "m":
        return f"{n}min"
    if unit == "d":
        return f"{n}day"
    if unit == "w":
        return f"{n}week"
    return f"{n}h"


def _parse_dt(raw: str) -> datetime:
    fmt = "%Y-%m-%d %H:%M:%S" if " " in raw else "%Y-%m-%d"
    return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)


def parse_values(symbol: str, interval: str, values: List[Dict[str, Any]]) -> CandleSeries:
    # TwelveData returns newest-first; from_candles restores oldest-first.
    out: List[Candle] = []
    for row in values:
        out.append(Candle(
            timestamp=_parse_dt(str(row["datetime"])),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume") or 0.0),
        ))
    return CandleSeries.from_candles(symbol, interval, out)


class TwelveDataProvider:
    def __init__(
        self,
        api_key: str,
        *,
        rest_timeout_s: int = 20,
        rest_max_retries: int = 3,
        rest_backoff_s: float = 1.0,
        min_fill_ratio: float = 0.8,
        timezone_name: str = "UTC",
    ):
        self.api_key = (api_key or "").strip()
        self.rest_timeout_s = rest_timeout_s
        self.rest_max_retries = rest_max_retries
        self.rest_backoff_s = rest_backoff_s
        self.min_fill_ratio = min_fill_ratio
        self.timezone_name = timezone_name
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.rest_timeout_s))
        return self._session

    async def fetch_candles(self, symbol: str, interval: str, limit: int) -> CandleSeries:
        if not self.api_key:
            raise DataUnavailable("TwelveData api key is not configured")
        limit = min(int(limit), _MAX_OUTPUTSIZE)
        try:
            params = {
                "symbol": twelvedata_symbol(symbol),
                "interval": twelvedata_interval(interval),
                "outputsize": limit,
                "timezone": self.timezone_name,
                "apikey": self.api_key,
            }
        except ValueError as e:
            raise DataUnavailable(f"{symbol}: {e}") from e

        sess = await self._get_session()
        backoff = float(self.rest_backoff_s)
        payload: Any = None
        for attempt in range(1, int(self.rest_max_retries) + 1):
            try:
                async with sess.get(BASE_URL, params=params) as resp:
                    if resp.status == 429:
                        log.warning("rest_rate_limited symbol=%s attempt=%d sleep=%.1fs", symbol, attempt, backoff)
                        if attempt >= int(self.rest_max_retries):
                            raise DataUnavailable(f"{symbol}: rate limited")
                        await asyncio.sleep(backoff)
                        backoff = min(backoff * 2.0, 20.0)
                        continue
                    if resp.status != 200:
                        txt = await resp.text()
                        raise DataUnavailable(f"TwelveData failed for {symbol}: {resp.status} {txt[:500]}")
                    payload = await resp.json(content_type=None)
                break
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                if attempt >= int(self.rest_max_retries):
                    raise DataUnavailable(f"{symbol}: {e!r}") from e
                log.warning(
                    "rest_timeout_or_client_err attempt=%d/%d symbol=%s backoff=%.1fs err=%s",
                    attempt,
                    self.rest_max_retries,
                    symbol,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2.0, 20.0)

        if not isinstance(payload, dict):
            raise DataUnavailable(f"{symbol}: unexpected payload {str(payload)[:200]}")
        # API-level errors (bad symbol, exhausted credits) come back as 200 with status=error
        if payload.get("status") == "error":
            raise DataUnavailable(f"{symbol}: {payload.get('code')} {payload.get('message')}")

        values = payload.get("values") or []
        try:
            series = parse_values(symbol, interval, values)
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(f"{symbol}: malformed time_series row: {e}") from e
        return ensure_filled(series, limit, self.min_fill_ratio)
