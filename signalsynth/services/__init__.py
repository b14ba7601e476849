"""
Services module - Cross-cutting capabilities

Contains:
- Market data gateway (provider fallback, caching, retry, health)
- Telegram notifications
- Watchlist/history persistence
- Scheduling
- Watchlist market alerts
"""

from signalsynth.services.alerts import AlertSettings, MarketAlert, MarketAlertChecker
from signalsynth.services.gateway import MarketDataGateway, create_market_data_gateway
from signalsynth.services.persistence import PersistenceService, SQLitePersistence
from signalsynth.services.scheduler import SchedulerService
from signalsynth.services.telegram import TelegramService

__all__ = [
    "AlertSettings",
    "MarketAlert",
    "MarketAlertChecker",
    "MarketDataGateway",
    "create_market_data_gateway",
    "PersistenceService",
    "SQLitePersistence",
    "SchedulerService",
    "TelegramService",
]
