"""Ask the routed model whether a URL serves a usable RSS/Atom feed."""

from typing import Any

from signalsynth.core.errors import MalformedResponseError
from signalsynth.domain.models import AnalysisStage
from signalsynth.domain.plans import RssVerification
from signalsynth.llm.prompts import RSS_VERIFY_SYSTEM, RSS_VERIFY_TEMPLATE
from signalsynth.llm.router import StageModelRouter
from signalsynth.rss.client import RssFeedClient
from signalsynth.stages.base import LlmStage

MAX_SNIPPET_CHARS = 2000


class RssFeedVerifier(LlmStage[RssVerification]):
    stage = AnalysisStage.RSS_VERIFY
    schema_id = "rss_verify_v1"
    system_prompt = RSS_VERIFY_SYSTEM

    def __init__(self, router: StageModelRouter, client: RssFeedClient):
        super().__init__(router)
        self.client = client

    def build_prompt(self, *, url: str, snippet: str, **_: Any) -> str:
        return RSS_VERIFY_TEMPLATE.format(url=url, snippet=snippet)

    def parse(self, data: dict[str, Any], **_: Any) -> RssVerification:
        return RssVerification.from_dict(data)

    def is_empty(self, value: RssVerification) -> bool:
        # An invalid verdict is still an answer
        return False

    async def verify(self, url: str) -> RssVerification:
        """
        Fetch the URL and have the model judge the first 2000 characters.

        Never raises; fetch, parse and provider failures come back as an
        invalid verification with the reason in `description`.
        """
        raw = await self.client.fetch_raw(url)
        if raw is None or not raw.strip():
            return RssVerification(is_valid=False, title="Unknown", description="Could not fetch URL.")

        outcome = await self.execute(url=url, snippet=raw[:MAX_SNIPPET_CHARS])
        if outcome.error is not None:
            if isinstance(outcome.error, MalformedResponseError):
                return RssVerification(is_valid=False, title="Unknown", description="Failed to parse validation.")
            return RssVerification(
                is_valid=False,
                title="Error",
                description=f"Verification process failed: {outcome.error}",
            )
        return outcome.value
