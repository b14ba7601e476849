"""
Watchlist market alerts.

Rule-based checks on intraday bars: price dipping below VWAP by a
configured percentage, and RSI crossing its oversold/overbought
thresholds. Each (symbol, type) pair is rate-limited by a cooldown.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from signalsynth.core.logging import LoggerMixin
from signalsynth.core.timeutil import format_timestamp, now_utc
from signalsynth.domain import indicators
from signalsynth.services.gateway import MarketDataGateway
from signalsynth.services.persistence import PersistenceService

ALERT_INTRADAY_DAYS = 1


class AlertType(str, Enum):
    VWAP_DIP = "vwap_dip"
    RSI_OVERSOLD = "rsi_oversold"
    RSI_OVERBOUGHT = "rsi_overbought"


@dataclass(frozen=True)
class AlertSettings:
    enabled: bool = False
    vwap_dip_percent: float = 1.0
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    cooldown_minutes: int = 60

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "AlertSettings":
        if not data:
            return cls()
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class MarketAlert:
    """
    An alert triggered by a watchlist rule.

    Attributes:
        symbol: Ticker
        alert_type: Which rule fired
        title: Short category for display
        message: Human-readable detail
        current_value: Price or RSI that triggered the rule
        threshold: The level it crossed
    """
    symbol: str
    alert_type: AlertType
    title: str
    message: str
    current_value: Optional[float] = None
    threshold: Optional[float] = None
    triggered_at: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.triggered_at:
            self.triggered_at = format_timestamp(now_utc())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["alert_type"] = self.alert_type.value
        return data


class MarketAlertChecker(LoggerMixin):
    """
    Evaluates alert rules for a watchlist.

    Cooldown timestamps live in `store` when one is given, so they
    survive across scheduled runs; otherwise they are kept in memory.

    Usage:
        checker = MarketAlertChecker(gateway, AlertSettings(enabled=True), store=persistence)
        alerts = await checker.check(["AAPL", "MSFT"])
    """

    def __init__(
        self,
        gateway: MarketDataGateway,
        settings: Optional[AlertSettings] = None,
        *,
        store: Optional[PersistenceService] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.settings = settings or AlertSettings()
        self.store = store
        self.clock = clock
        self._last_sent: dict[tuple[str, AlertType], float] = {}

    def _should_notify(self, symbol: str, alert_type: AlertType) -> bool:
        key = (symbol, alert_type)
        now = self.clock()
        if self.store is not None:
            last = self.store.last_alert_at(symbol, alert_type.value)
        else:
            last = self._last_sent.get(key)
        if last is not None and now - last < self.settings.cooldown_minutes * 60:
            return False
        if self.store is not None:
            self.store.record_alert(symbol, alert_type.value, now)
        else:
            self._last_sent[key] = now
        return True

    async def check(self, symbols: list[str]) -> list[MarketAlert]:
        if not symbols:
            return []
        quotes = await self.gateway.get_quotes(symbols)
        alerts: list[MarketAlert] = []

        for symbol in (s.strip().upper() for s in symbols):
            quote = quotes.get(symbol)
            if quote is None:
                continue
            bars = await self.gateway.get_intraday(symbol, ALERT_INTRADAY_DAYS)
            vwap = indicators.vwap(bars)
            rsi = indicators.rsi([b.close for b in bars], 14)
            alerts.extend(self.evaluate(symbol, quote.price, vwap, rsi))

        if alerts:
            self.logger.info(f"{len(alerts)} market alerts for {len(symbols)} symbols")
        return alerts

    def evaluate(
        self,
        symbol: str,
        price: float,
        vwap: Optional[float],
        rsi: Optional[float],
    ) -> list[MarketAlert]:
        """Apply the rules to one symbol's numbers."""
        alerts = []
        s = self.settings

        if vwap is not None:
            dip_level = vwap * (1.0 - s.vwap_dip_percent / 100.0)
            if price < dip_level and self._should_notify(symbol, AlertType.VWAP_DIP):
                alerts.append(MarketAlert(
                    symbol=symbol,
                    alert_type=AlertType.VWAP_DIP,
                    title="Investment Signal",
                    message=f"Price {price:.2f} is more than {s.vwap_dip_percent:g}% below VWAP {vwap:.2f}",
                    current_value=price,
                    threshold=round(dip_level, 4),
                    metadata={"vwap": vwap},
                ))

        if rsi is not None:
            if rsi <= s.rsi_oversold and self._should_notify(symbol, AlertType.RSI_OVERSOLD):
                alerts.append(MarketAlert(
                    symbol=symbol,
                    alert_type=AlertType.RSI_OVERSOLD,
                    title="Buy Opportunity",
                    message=f"RSI oversold ({rsi:.0f})",
                    current_value=rsi,
                    threshold=s.rsi_oversold,
                ))
            if rsi >= s.rsi_overbought and self._should_notify(symbol, AlertType.RSI_OVERBOUGHT):
                alerts.append(MarketAlert(
                    symbol=symbol,
                    alert_type=AlertType.RSI_OVERBOUGHT,
                    title="Sell Warning",
                    message=f"RSI overbought ({rsi:.0f})",
                    current_value=rsi,
                    threshold=s.rsi_overbought,
                ))

        return alerts
