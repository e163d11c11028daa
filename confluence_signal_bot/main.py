from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Optional

from .config import Config, load_config
from .errors import ConfigurationError
from .providers.binance import BinanceProvider
from .providers.twelvedata import TwelveDataProvider
from .publisher import NotifierPublisher
from .runner import SignalRunner

log = logging.getLogger("main")


def _setup_logging(level: str) -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def build_provider(cfg: Config):
    p = cfg.provider
    if p.type == "twelvedata":
        return TwelveDataProvider(
            p.api_key,
            rest_timeout_s=p.rest_timeout_s,
            min_fill_ratio=p.min_fill_ratio,
        )
    return BinanceProvider(
        market=p.market,
        rest_timeout_s=p.rest_timeout_s,
        min_fill_ratio=p.min_fill_ratio,
    )


async def _run(cfg: Config, once: bool) -> int:
    provider = build_provider(cfg)
    publisher = NotifierPublisher(cfg)
    runner = SignalRunner(cfg, provider, publisher)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(runner.stop()))
        except (NotImplementedError, RuntimeError):
            # not available on Windows event loops
            pass

    try:
        if once:
            report = await runner.run_cycle()
            for sym, outcome in sorted(report.results.items()):
                log.info("result symbol=%s status=%s detail=%s", sym, outcome.status, outcome.detail)
        else:
            await publisher.announce(
                f"✅ {cfg.app.name}: monitoring {len(runner.symbols)} symbols on {runner.interval} ({cfg.profile.name})."
            )
            await runner.run_forever()
    finally:
        # Close shared REST session cleanly.
        await provider.close()
    return 0


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(description="Confluence Sentinel - multi-indicator signal bot")
    p.add_argument("--config", required=True, help="Path to YAML config")
    p.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    p.add_argument("--symbols", default="", help="Comma-separated symbols overriding provider.symbols")
    args = p.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigurationError as e:
        _setup_logging("INFO")
        log.error("config_error err=%s", e)
        return 2

    _setup_logging(cfg.app.log_level)
    if args.symbols:
        cfg.provider.symbols = [s.strip() for s in args.symbols.split(",") if s.strip()]
    if not cfg.provider.symbols:
        log.error("config_error err=no symbols configured")
        return 2

    try:
        return asyncio.run(_run(cfg, args.once))
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        log.exception("fatal err=%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
