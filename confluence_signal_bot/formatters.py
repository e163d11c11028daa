from __future__ import annotations

import html
from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import BUY, Signal
from .scoring import recommendation


def _tz(cfg) -> timezone:
    hours = float(getattr(cfg, "display_utc_offset_hours", 0.0) or 0.0)
    return timezone(timedelta(hours=hours))


def _tz_label(cfg) -> str:
    hours = float(getattr(cfg, "display_utc_offset_hours", 0.0) or 0.0)
    if hours == 0:
        return "UTC"
    return f"UTC{hours:+g}"


def _fmt_dt(ts: datetime, tz: timezone) -> str:
    return ts.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def _escape_markdown_v2(text: str) -> str:
    specials = r"\_*[]()~`>#+-=|{}.!"
    escaped = []
    for ch in str(text):
        if ch in specials:
            escaped.append("\\" + ch)
        else:
            escaped.append(ch)
    return "".join(escaped)


def _escape_text(text: str, parse_mode: str) -> str:
    if parse_mode == "MARKDOWNV2":
        return _escape_markdown_v2(text)
    return html.escape(str(text), quote=False)


def _bold(text: str, parse_mode: str) -> str:
    escaped = _escape_text(text, parse_mode)
    if parse_mode == "MARKDOWNV2":
        return f"*{escaped}*"
    return f"<b>{escaped}</b>"


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:g}"


def _risk_line(signal: Signal) -> str:
    parts = [f"SL: {_fmt_price(signal.stop_loss)}", f"TP: {_fmt_price(signal.take_profit)}"]
    if signal.stop_pct is not None and signal.target_pct is not None:
        parts.append(f"risk {signal.stop_pct:.2f}% / reward {signal.target_pct:.2f}%")
    if signal.target_pips is not None:
        parts.append(f"{signal.target_pips:g} pips")
    return " | ".join(parts)


def format_signal(signal: Signal, cfg, *, detail_level: Optional[str] = None) -> str:
    """Telegram text for one accepted signal in the configured parse mode."""
    parse_mode = (getattr(cfg, "parse_mode", "HTML") or "HTML").upper()
    chosen_detail = (detail_level or getattr(cfg, "detail_level", "public") or "public").lower()
    tz = _tz(cfg)
    pipe = "\\|" if parse_mode == "MARKDOWNV2" else "|"
    arrow = "🟢" if signal.direction == BUY else "🔴"

    lines = [
        f"{arrow} {_bold(signal.symbol, parse_mode)}  {pipe}  {_bold(signal.interval or '-', parse_mode)}",
        f"{_bold(signal.direction, parse_mode)} {_escape_text('•', parse_mode)} "
        f"Confidence: {_bold(f'{signal.confidence_percent:.0f}% ({signal.confidence_tier})', parse_mode)}",
        "",
        _escape_text(f"Time ({_tz_label(cfg)}): {_fmt_dt(signal.timestamp, tz)}", parse_mode),
        _escape_text(f"Entry: {_fmt_price(signal.entry_price)}", parse_mode),
        _escape_text(_risk_line(signal), parse_mode),
        _escape_text(recommendation(signal.confidence_percent), parse_mode),
    ]

    if getattr(cfg, "include_reasons", True) and signal.reasons:
        lines.append("")
        lines.append(_escape_text(f"Conditions {signal.conditions_met}/{signal.conditions_total}:", parse_mode))
        for reason in signal.reasons:
            lines.append(_escape_text(f"- {reason}", parse_mode))

    if chosen_detail == "internal":
        lines.append(_escape_text(f"Profile: {signal.profile} | id: {signal.signal_id}", parse_mode))
        if signal.candle_time is not None:
            lines.append(_escape_text(f"Candle: {_fmt_dt(signal.candle_time, tz)}", parse_mode))

    footer = (getattr(cfg, "footer", "") or "").strip()
    if footer:
        lines.append("")
        lines.append(_escape_text(footer, parse_mode))

    return "\n".join(lines)


def format_status(symbol: str, status: str, detail: str, cfg) -> str:
    parse_mode = (getattr(cfg, "parse_mode", "HTML") or "HTML").upper()
    text = f"{status}: {detail}" if detail else status
    return f"{_bold(symbol, parse_mode)} {_escape_text(text, parse_mode)}"
