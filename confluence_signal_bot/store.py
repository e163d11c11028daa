from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .models import BUY, SELL, Signal, SymbolState

log = logging.getLogger("store")


class SignalStore:
    """Latest accepted signal per symbol plus the cool-down deduplicator.

    One SymbolState per symbol. Each symbol's state is written only by that
    symbol's pipeline, so no cross-symbol locking is needed.
    """

    def __init__(self, cooldown_minutes: float = 60.0):
        self.cooldown = timedelta(minutes=float(cooldown_minutes))
        self._states: Dict[str, SymbolState] = {}
        # dedup memory survives a manual dismissal of the visible signal
        self._accepted: Dict[str, Signal] = {}

    def state(self, symbol: str) -> SymbolState:
        st = self._states.get(symbol)
        if st is None:
            st = SymbolState(symbol=symbol)
            self._states[symbol] = st
        return st

    def is_duplicate(self, signal: Signal) -> bool:
        prev = self._accepted.get(signal.symbol)
        if prev is None:
            return False
        if prev.symbol != signal.symbol or prev.direction != signal.direction:
            return False
        return (signal.timestamp - prev.timestamp) < self.cooldown

    def offer(self, signal: Signal) -> bool:
        """Accept a non-HOLD signal unless it repeats the stored one inside the cool-down."""
        if signal.direction not in (BUY, SELL):
            return False
        if self.is_duplicate(signal):
            log.info(
                "signal_deduped symbol=%s direction=%s ts=%s",
                signal.symbol,
                signal.direction,
                signal.timestamp.isoformat(),
            )
            return False
        st = self.state(signal.symbol)
        st.last_signal = signal
        st.last_accepted_at = signal.timestamp
        self._accepted[signal.symbol] = signal
        return True

    def set_status(self, symbol: str, status: str, detail: str = "", at: Optional[datetime] = None) -> SymbolState:
        st = self.state(symbol)
        st.status = status
        st.detail = detail
        st.updated_at = at
        return st

    def latest(self, symbol: str) -> Optional[Signal]:
        st = self._states.get(symbol)
        return st.last_signal if st else None

    def signals(self) -> List[Signal]:
        return [st.last_signal for st in self._states.values() if st.last_signal is not None]

    def dismiss(self, key: str) -> Optional[Signal]:
        """Drop a stored signal by signal id or by symbol.

        The cool-down still applies, so a dismissed signal is not re-emitted
        straight away.
        """
        for st in self._states.values():
            sig = st.last_signal
            if sig is None:
                continue
            if sig.signal_id == key or st.symbol == key:
                st.last_signal = None
                return sig
        return None
