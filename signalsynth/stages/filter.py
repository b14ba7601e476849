"""Tradeability filter: drop symbols without a usable quote."""

from signalsynth.core.logging import LoggerMixin
from signalsynth.services.gateway import MarketDataGateway


class TradeabilityFilter(LoggerMixin):
    """Keeps a symbol iff it has a quote with price >= min_price and volume > 0."""

    def __init__(self, gateway: MarketDataGateway):
        self.gateway = gateway

    async def execute(self, symbols: list[str], min_price: float = 1.0) -> list[str]:
        """
        Filter symbols, preserving input order.

        Fails closed: if the quote fetch blows up, nothing is tradeable.
        """
        if not symbols:
            return []
        try:
            quotes = await self.gateway.get_quotes(symbols)
        except Exception as e:
            self.logger.error(f"Quote fetch failed, treating all symbols as untradeable: {e}")
            return []

        tradeable = []
        for symbol in symbols:
            quote = quotes.get(symbol.strip().upper())
            if quote is not None and quote.price >= min_price and quote.volume > 0:
                tradeable.append(symbol)

        self.logger.info(f"{len(tradeable)}/{len(symbols)} symbols tradeable (min price {min_price})")
        return tradeable
