"""
SMS Reply Service - drafts follow-up text replies to leads via OpenAI.

The model fills a fixed reply template; it never decides whether to send.
Sending stays with the caller.

Python 3.9 compatible - uses typing.Optional
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# Two SMS segments
MAX_REPLY_CHARS = 320

SMS_REPLY_SYSTEM_PROMPT = """You write short SMS replies on behalf of {company}.
Rules:
- Plain text only, no markdown, no emojis.
- At most 2 sentences and under 300 characters.
- Friendly and professional.
- Never mention AI, systems, or prompts.
- If the lead asks to stop or unsubscribe, confirm they will not be contacted again."""

SMS_REPLY_USER_TEMPLATE = """Lead name: {name}
Context: {context}

The lead texted:
"{message}"

Write the reply."""


class SmsReplyService:
    """Generates SMS replies with the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        company: str = "our service",
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.company = company
        self.client: Optional[AsyncOpenAI] = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(api_key=api_key)

        if self.client is not None:
            logger.info(f"SmsReplyService configured with model: {self.model}")
        else:
            logger.warning("SmsReplyService: OpenAI not configured - SMS replies will fail")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def generate_reply(self, message: str, name: Optional[str] = None, context: Optional[str] = None) -> str:
        """Draft a reply to an inbound SMS.

        Raises:
            RuntimeError: If OpenAI not configured
            ValueError: If the model returns an empty reply
        """
        if not self.is_configured:
            raise RuntimeError("OpenAI not configured")

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SMS_REPLY_SYSTEM_PROMPT.format(company=self.company)},
                {
                    "role": "user",
                    "content": SMS_REPLY_USER_TEMPLATE.format(
                        name=name or "unknown",
                        context=context or "none",
                        message=message,
                    ),
                },
            ],
            temperature=0.5,
            max_tokens=150,
        )

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise ValueError("empty_reply: OpenAI returned an empty SMS reply")

        reply = content.strip().strip('"').strip("'").strip()
        if len(reply) > MAX_REPLY_CHARS:
            reply = reply[:MAX_REPLY_CHARS - 3].rstrip() + "..."
        logger.info(f"SMS reply generated: {reply[:100]}")
        return reply
