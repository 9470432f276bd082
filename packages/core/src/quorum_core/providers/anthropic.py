from __future__ import annotations

from quorum_core.providers.base import BaseSummarizer


class AnthropicSummarizer(BaseSummarizer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.2
    # Prefilled assistant turn; Claude continues the summary object from here.
    JSON_PREFILL = "{"

    def __init__(self, api_key: str, model: str | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "Discussion summaries with Claude need the 'anthropic' package. "
                "Install it with: pip install 'quorum-gov[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key)
        self.model = model or self.MODEL

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[
                {"role": "user", "content": user_prompt},
                {"role": "assistant", "content": self.JSON_PREFILL},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        if response.stop_reason == "max_tokens":
            raise RuntimeError(f"Summary cut off at {self.MAX_TOKENS} tokens")
        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        return self.JSON_PREFILL + text.strip()
