"""
Providers module - Market data adapters

Each adapter wraps one vendor API and returns domain models.
Adapters implement the capability protocols for the data kinds their
vendor offers and are registered into per-kind lists by ProviderBundle.
"""

from signalsynth.providers.base import BaseProvider, HealthCheckResult, ProviderStatus
from signalsynth.providers.alpaca import AlpacaProvider
from signalsynth.providers.polygon import PolygonProvider
from signalsynth.providers.twelvedata import TwelveDataProvider
from signalsynth.providers.finnhub import FinnhubProvider
from signalsynth.providers.fmp import FMPProvider
from signalsynth.providers.mock import MockProvider
from signalsynth.providers.bundle import ProviderBundle, create_provider_bundle

__all__ = [
    "BaseProvider",
    "HealthCheckResult",
    "ProviderStatus",
    "AlpacaProvider",
    "PolygonProvider",
    "TwelveDataProvider",
    "FinnhubProvider",
    "FMPProvider",
    "MockProvider",
    "ProviderBundle",
    "create_provider_bundle",
]
