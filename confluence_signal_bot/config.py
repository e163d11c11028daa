from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import os
import yaml

from .errors import ConfigurationError
from .profiles import SignalProfile, resolve_profile
from .risk import ASSET_CLASSES
from .timefilter import DEFAULT_EVENTS, NewsEvent, NewsWindowFilter

log = logging.getLogger("config")


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


def _env_list(env_key: str) -> Optional[List[str]]:
    raw = os.getenv(env_key)
    if not raw:
        return None
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass
class AppConfig:
    name: str = "Confluence Sentinel"
    log_level: str = "INFO"


@dataclass
class ProviderConfig:
    type: str = "binance"  # binance | twelvedata
    market: str = "spot"  # spot | futures (binance only)
    symbols: List[str] = None
    interval: Optional[str] = None  # defaults to the profile's interval
    lookback: Optional[int] = None  # defaults to the profile's lookback
    api_key: str = ""
    rest_timeout_s: int = 20
    fetch_timeout_s: float = 30.0
    min_fill_ratio: float = 0.8


@dataclass
class ScheduleConfig:
    interval_s: int = 900
    concurrency: int = 5
    run_on_start: bool = True


@dataclass
class StrategyConfig:
    profile: str = "classic"
    overrides: Dict[str, Any] = None


@dataclass
class RiskConfig:
    # per-symbol InstrumentSpec overrides: {symbol: {pip_size, precision, asset_class}}
    instruments: Dict[str, Dict[str, Any]] = None


@dataclass
class NewsConfig:
    enabled: bool = True
    window_minutes: int = 90
    events: List[Dict[str, Any]] = None


@dataclass
class DedupConfig:
    cooldown_minutes: float = 60.0


@dataclass
class TelegramConfig:
    enabled: bool = True
    token: str = ""
    chat_ids: List[str] = None
    disable_web_page_preview: bool = True
    send_status: bool = False


@dataclass
class WebhookConfig:
    enabled: bool = False
    url: str = ""
    secret: str = ""
    timeout_s: int = 10
    headers: Dict[str, str] = None


@dataclass
class AlertsConfig:
    parse_mode: str = "HTML"  # HTML | MarkdownV2
    detail_level: str = "public"  # public | internal
    footer: str = ""
    include_reasons: bool = True
    display_utc_offset_hours: float = 0.0


@dataclass
class Config:
    app: AppConfig
    provider: ProviderConfig
    schedule: ScheduleConfig
    strategy: StrategyConfig
    risk: RiskConfig
    news: NewsConfig
    dedup: DedupConfig
    telegram: TelegramConfig
    webhook: WebhookConfig
    alerts: AlertsConfig
    profile: SignalProfile = field(default=None, repr=False)

    @property
    def interval(self) -> str:
        return self.provider.interval or self.profile.interval

    @property
    def lookback(self) -> int:
        return int(self.provider.lookback or self.profile.lookback)

    def news_filter(self) -> NewsWindowFilter:
        if self.news.events is None:
            events = list(DEFAULT_EVENTS)
        else:
            events = [_news_event(ev) for ev in self.news.events]
        return NewsWindowFilter(events, window_minutes=self.news.window_minutes, enabled=self.news.enabled)


def _news_event(raw: Dict[str, Any]) -> NewsEvent:
    if not isinstance(raw, dict) or "time" not in raw:
        raise ConfigurationError(f"news event needs at least a 'time' key: {raw!r}")
    days = raw.get("days")
    try:
        days = tuple(int(d) for d in days) if days is not None else None
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"news event days must be a list of weekday numbers: {raw!r}") from e
    return NewsEvent(time=str(raw["time"]), label=str(raw.get("label", raw["time"])), days=days)


def _section(cls, raw: Any, name: str):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"config section '{name}' must be a mapping")
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"config section '{name}': {e}") from e


def build_config(raw: Dict[str, Any]) -> Config:
    """Build and validate a Config from an already-parsed mapping."""
    cfg = Config(
        app=_section(AppConfig, raw.get("app"), "app"),
        provider=_section(ProviderConfig, raw.get("provider"), "provider"),
        schedule=_section(ScheduleConfig, raw.get("schedule"), "schedule"),
        strategy=_section(StrategyConfig, raw.get("strategy"), "strategy"),
        risk=_section(RiskConfig, raw.get("risk"), "risk"),
        news=_section(NewsConfig, raw.get("news"), "news"),
        dedup=_section(DedupConfig, raw.get("dedup"), "dedup"),
        telegram=_section(TelegramConfig, raw.get("telegram"), "telegram"),
        webhook=_section(WebhookConfig, raw.get("webhook"), "webhook"),
        alerts=_section(AlertsConfig, raw.get("alerts"), "alerts"),
    )

    # env overrides (useful on servers)
    cfg.telegram.token = _env_override(cfg.telegram.token, "TELEGRAM_TOKEN")
    cfg.telegram.chat_ids = _env_list("TELEGRAM_CHAT_IDS") or [str(x) for x in (cfg.telegram.chat_ids or [])]
    cfg.webhook.secret = _env_override(cfg.webhook.secret, "WEBHOOK_SECRET")
    cfg.webhook.url = _env_override(cfg.webhook.url, "WEBHOOK_URL")
    cfg.provider.api_key = _env_override(cfg.provider.api_key, "TWELVEDATA_API_KEY")

    if cfg.provider.symbols is None:
        cfg.provider.symbols = []
    if cfg.strategy.overrides is None:
        cfg.strategy.overrides = {}
    if not isinstance(cfg.strategy.overrides, dict):
        raise ConfigurationError("strategy.overrides must be a mapping")
    if cfg.risk.instruments is None:
        cfg.risk.instruments = {}
    if cfg.webhook.headers is None:
        cfg.webhook.headers = {}

    cfg.profile = resolve_profile(cfg.strategy.profile, cfg.strategy.overrides)
    validate(cfg)
    return cfg


def load_config(path: str) -> Config:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    cfg = build_config(raw)
    log.info(
        "config_loaded path=%s profile=%s symbols=%d provider=%s",
        path,
        cfg.profile.name,
        len(cfg.provider.symbols),
        cfg.provider.type,
    )
    return cfg


def _num(errs: List[str], cast, value: Any, key: str) -> Optional[Any]:
    try:
        return cast(value)
    except (TypeError, ValueError):
        errs.append(f"{key} must be a number, got {value!r}")
        return None


def validate(cfg: Config) -> None:
    errs: List[str] = []
    if cfg.provider.type not in ("binance", "twelvedata"):
        errs.append(f"provider.type must be binance or twelvedata, got {cfg.provider.type!r}")
    if cfg.provider.market not in ("spot", "futures"):
        errs.append("provider.market must be spot or futures")
    if cfg.provider.type == "twelvedata" and not cfg.provider.api_key:
        errs.append("provider.api_key (or TWELVEDATA_API_KEY) is required for twelvedata")
    if not isinstance(cfg.provider.symbols, list):
        errs.append("provider.symbols must be a list")

    fill = _num(errs, float, cfg.provider.min_fill_ratio, "provider.min_fill_ratio")
    if fill is not None and not 0.0 < fill <= 1.0:
        errs.append("provider.min_fill_ratio must be within (0, 1]")
    fetch_timeout = _num(errs, float, cfg.provider.fetch_timeout_s, "provider.fetch_timeout_s")
    if fetch_timeout is not None and fetch_timeout <= 0:
        errs.append("provider.fetch_timeout_s must be > 0")
    if cfg.provider.lookback is not None:
        lookback = _num(errs, int, cfg.provider.lookback, "provider.lookback")
        if lookback is not None and lookback < cfg.profile.min_history:
            errs.append(f"provider.lookback must be >= {cfg.profile.min_history} for profile {cfg.profile.name}")
    interval_s = _num(errs, int, cfg.schedule.interval_s, "schedule.interval_s")
    if interval_s is not None and interval_s <= 0:
        errs.append("schedule.interval_s must be > 0")
    concurrency = _num(errs, int, cfg.schedule.concurrency, "schedule.concurrency")
    if concurrency is not None and concurrency <= 0:
        errs.append("schedule.concurrency must be > 0")
    cooldown = _num(errs, float, cfg.dedup.cooldown_minutes, "dedup.cooldown_minutes")
    if cooldown is not None and cooldown < 0:
        errs.append("dedup.cooldown_minutes must be >= 0")
    _num(errs, int, cfg.news.window_minutes, "news.window_minutes")
    _num(errs, float, cfg.alerts.display_utc_offset_hours, "alerts.display_utc_offset_hours")

    if str(cfg.alerts.parse_mode).upper() not in ("HTML", "MARKDOWNV2"):
        errs.append("alerts.parse_mode must be HTML or MarkdownV2")
    if cfg.alerts.detail_level not in ("public", "internal"):
        errs.append("alerts.detail_level must be public or internal")

    if not isinstance(cfg.risk.instruments, dict):
        errs.append("risk.instruments must be a mapping")
    else:
        for sym, ov in cfg.risk.instruments.items():
            if not isinstance(ov, dict):
                errs.append(f"risk.instruments.{sym} must be a mapping")
                continue
            if "pip_size" in ov:
                pip = _num(errs, float, ov["pip_size"], f"risk.instruments.{sym}.pip_size")
                if pip is not None and pip <= 0:
                    errs.append(f"risk.instruments.{sym}.pip_size must be > 0")
            if "precision" in ov:
                precision = _num(errs, int, ov["precision"], f"risk.instruments.{sym}.precision")
                if precision is not None and precision < 0:
                    errs.append(f"risk.instruments.{sym}.precision must be >= 0")
            if "asset_class" in ov and ov["asset_class"] not in ASSET_CLASSES:
                errs.append(f"risk.instruments.{sym}.asset_class must be one of {', '.join(ASSET_CLASSES)}")
    if errs:
        raise ConfigurationError("Invalid config: " + "; ".join(errs))
    # parses every event time; raises ConfigurationError on bad entries
    cfg.news_filter()
