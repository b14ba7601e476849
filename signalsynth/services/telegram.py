"""
Telegram notification service.

Sends setup summaries and watchlist alerts to a configured chat.
"""

import asyncio
from typing import Any, Optional

from telegram import Bot

from signalsynth.core.config import Settings, get_settings
from signalsynth.core.logging import get_logger
from signalsynth.domain.models import AnalysisResult, TradeSetup

logger = get_logger("telegram")

MAX_SETUPS_PER_MESSAGE = 10

BIAS_EMOJI = {
    "bullish": "🟢",
    "bearish": "🔴",
    "neutral": "⚪",
}


def format_setup_line(setup: TradeSetup) -> str:
    bias = (setup.setup_bias or "").lower()
    emoji = BIAS_EMOJI.get(bias, "•")
    confidence = setup.decision_confidence if setup.decision_confidence is not None else setup.confidence
    line = (
        f"{emoji} *{setup.symbol}* {setup.setup_type} "
        f"@ `{setup.trigger_price:.2f}` stop `{setup.stop_loss:.2f}` "
        f"target `{setup.target_price:.2f}` ({confidence:.0%})"
    )
    if setup.must_review:
        line += " ⚠️ review"
    return line


def format_result(result: AnalysisResult) -> str:
    """Markdown summary of an analysis run."""
    header = (
        f"📊 *SignalSynth {result.intent.value.replace('_', ' ').title()}*\n"
        f"{result.total_candidates} candidates → {result.tradeable_count} tradeable → "
        f"{result.setup_count} setups"
    )
    if not result.setups:
        notes = "\n".join(f"• {n}" for n in result.global_notes[:3])
        return f"{header}\n\nNo setups this run.\n{notes}".rstrip()

    lines = [format_setup_line(s) for s in result.setups[:MAX_SETUPS_PER_MESSAGE]]
    text = f"{header}\n\n" + "\n".join(lines)

    synthesis = result.fundamentals_news_synthesis
    if synthesis is not None and synthesis.portfolio_guidance.notes:
        text += "\n\n🧭 " + " ".join(synthesis.portfolio_guidance.notes[:2])

    return f"{text}\n\n⏰ {result.generated_at.isoformat()}"


class TelegramService:
    """
    Telegram notification service.

    Sends messages to a configured chat using a bot.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        enabled: bool = True,
        settings: Optional[Settings] = None,
        bot: Optional[Bot] = None,
    ):
        settings = settings or get_settings()

        self.bot_token = bot_token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.telegram_chat_id
        self.enabled = enabled and settings.telegram_enabled

        self._bot = bot

        if self.enabled and (not self.bot_token or not self.chat_id):
            logger.warning("Telegram enabled but credentials not configured")
            self.enabled = False

    @property
    def bot(self) -> Bot:
        """Lazy-initialize Telegram bot."""
        if self._bot is None:
            self._bot = Bot(token=self.bot_token)
        return self._bot

    async def send_message_async(
        self,
        text: str,
        parse_mode: Optional[str] = "Markdown",
    ) -> bool:
        """
        Send message asynchronously.

        Returns:
            True if sent successfully
        """
        if not self.enabled:
            logger.debug("Telegram disabled, skipping message")
            return False

        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                parse_mode=parse_mode,
            )
            logger.info("Telegram message sent")
            return True

        except Exception as e:
            logger.error(f"Failed to send Telegram message: {e}")
            return False

    def send_message(self, text: str, parse_mode: Optional[str] = "Markdown") -> bool:
        """
        Send message synchronously.

        Must not be called from inside a running event loop; use
        send_message_async there.
        """
        return asyncio.run(self.send_message_async(text, parse_mode))

    async def send_setups(self, result: AnalysisResult) -> bool:
        """Send a summary of an analysis run's setups."""
        return await self.send_message_async(format_result(result))

    async def send_alert(self, alert: dict[str, Any]) -> bool:
        """
        Send a watchlist alert.

        Args:
            alert: Alert dict (see MarketAlert.to_dict)
        """
        text = (
            f"🚨 *{alert.get('symbol', '?')}*: {alert.get('title', 'Alert')}\n\n"
            f"{alert.get('message', '')}\n\n"
            f"📊 Value: `{alert.get('current_value')}`\n"
            f"📏 Threshold: `{alert.get('threshold')}`\n"
            f"⏰ {alert.get('triggered_at', '')}"
        )
        return await self.send_message_async(text)

    async def send_alerts(self, alerts: list[dict[str, Any]]) -> int:
        """Returns the number of alerts sent successfully."""
        sent = 0
        for alert in alerts:
            if await self.send_alert(alert):
                sent += 1
        return sent


def create_telegram_service(
    settings: Optional[Settings] = None,
) -> TelegramService:
    """Create Telegram service from settings."""
    return TelegramService(settings=settings)
