from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

import aiohttp

from ..errors import DataUnavailable
from ..models import Candle, CandleSeries
from .base import ensure_filled, parse_interval

log = logging.getLogger("binance")

_MAX_LIMIT = 1000


def _rest_base(market: str) -> str:
    return "https://fapi.binance.com" if market == "futures" else "https://api.binance.com"


def _klines_path(market: str) -> str:
    return "/fapi/v1/klines" if market == "futures" else "/api/v3/klines"


def binance_symbol(symbol: str) -> str:
    """'BTC/USDT' or 'btc/usdt:CRYPTO' -> 'BTCUSDT'."""
    return symbol.split(":")[0].replace("/", "").replace("-", "").upper()


def binance_interval(interval: str) -> str:
    n, unit = parse_interval(interval)
    if unit == "w":
        return f"{n}w"
    return f"{n}{unit}"


def parse_klines(symbol: str, interval: str, rows: List[list]) -> CandleSeries:
    out: List[Candle] = []
    for row in rows:
        # [0]=open time ms, [1..5]=o,h,l,c,v
        out.append(Candle(
            timestamp=datetime.fromtimestamp(int(row[0]) / 1000.0, tz=timezone.utc),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        ))
    return CandleSeries.from_candles(symbol, interval, out)


class BinanceProvider:
    def __init__(
        self,
        market: str = "spot",
        *,
        rest_timeout_s: int = 20,
        rest_max_retries: int = 4,
        rest_backoff_s: float = 0.8,
        rest_conn_limit: int = 40,
        rest_conn_limit_per_host: int = 10,
        min_fill_ratio: float = 0.8,
    ):
        self.market = market
        self.rest_timeout_s = rest_timeout_s

        # REST robustness
        self.rest_max_retries = rest_max_retries
        self.rest_backoff_s = rest_backoff_s
        self.rest_conn_limit = rest_conn_limit
        self.rest_conn_limit_per_host = rest_conn_limit_per_host
        self.min_fill_ratio = min_fill_ratio

        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        """Close the shared aiohttp session (best-effort)."""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.rest_timeout_s,
            connect=min(10, self.rest_timeout_s),
            sock_connect=min(10, self.rest_timeout_s),
            sock_read=max(10, int(self.rest_timeout_s * 0.75)),
        )

    def _connector(self) -> aiohttp.TCPConnector:
        return aiohttp.TCPConnector(
            limit=self.rest_conn_limit,
            limit_per_host=self.rest_conn_limit_per_host,
            ttl_dns_cache=300,
            enable_cleanup_closed=True,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout(), connector=self._connector())
        return self._session

    async def fetch_candles(self, symbol: str, interval: str, limit: int) -> CandleSeries:
        """Most recent ``limit`` closed-or-forming klines, oldest-first."""
        url = _rest_base(self.market) + _klines_path(self.market)
        limit = min(int(limit), _MAX_LIMIT)
        try:
            params = {"symbol": binance_symbol(symbol), "interval": binance_interval(interval), "limit": limit}
        except ValueError as e:
            raise DataUnavailable(f"{symbol}: {e}") from e

        sess = await self._get_session()

        backoff = float(self.rest_backoff_s)
        last_err: Optional[BaseException] = None
        data = None
        for attempt in range(1, int(self.rest_max_retries) + 1):
            try:
                async with sess.get(url, params=params) as resp:
                    # Rate-limit / ban signals
                    if resp.status in (418, 429):
                        txt = await resp.text()
                        retry_after = resp.headers.get("Retry-After")
                        sleep_s = float(retry_after) if (retry_after and retry_after.isdigit()) else backoff
                        log.warning(
                            "rest_rate_limited status=%s symbol=%s interval=%s sleep=%.1fs body=%s",
                            resp.status,
                            symbol,
                            interval,
                            sleep_s,
                            txt[:200],
                        )
                        last_err = DataUnavailable(f"{symbol}: rate limited ({resp.status})")
                        await asyncio.sleep(sleep_s)
                        backoff = min(backoff * 2.0, 20.0)
                        continue

                    if resp.status != 200:
                        txt = await resp.text()
                        raise DataUnavailable(f"Binance klines failed for {symbol}: {resp.status} {txt[:500]}")

                    # Some proxies return a wrong content-type; be tolerant.
                    data = await resp.json(content_type=None)

                last_err = None
                break

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_err = e
                if attempt >= int(self.rest_max_retries):
                    break
                log.warning(
                    "rest_timeout_or_client_err attempt=%d/%d symbol=%s interval=%s backoff=%.1fs err=%s",
                    attempt,
                    self.rest_max_retries,
                    symbol,
                    interval,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2.0, 20.0)

        if last_err is not None:
            if isinstance(last_err, DataUnavailable):
                raise last_err
            raise DataUnavailable(f"{symbol}: {last_err!r}") from last_err
        if not isinstance(data, list):
            raise DataUnavailable(f"{symbol}: unexpected klines payload {str(data)[:200]}")

        try:
            series = parse_klines(symbol, interval, data)
        except (IndexError, TypeError, ValueError) as e:
            raise DataUnavailable(f"{symbol}: malformed kline row: {e}") from e
        return ensure_filled(series, limit, self.min_fill_ratio)
