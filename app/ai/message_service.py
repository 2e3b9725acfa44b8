"""
Message Service - AI-written lead messages.

Contract:
  - Never raises: any failure comes back as MessageResult(success=False, error=...)
  - Never modifies the lead; callers decide what to record
  - Every OpenAI call carries an explicit timeout (OPENAI_TIMEOUT_SECONDS)
"""
import logging
from typing import Any, Optional

from openai import AsyncOpenAI
from pydantic import BaseModel

from app.ai.prompts import (
    MESSAGE_SYSTEM_PROMPT,
    build_lead_context,
    build_follow_up_prompt,
    build_outreach_prompt,
)
from app.core.config import settings

logger = logging.getLogger(__name__)


class MessageResult(BaseModel):
    success: bool
    type: str
    message: Optional[str] = None
    error: Optional[str] = None
    tokens_used: Optional[int] = None


class MessageService:
    def __init__(self, client: Optional[AsyncOpenAI] = None, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = settings.OPENAI_MODEL
        self._client = client

    @property
    def client(self) -> Optional[AsyncOpenAI]:
        if self._client is None and self.api_key:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
            )
        return self._client

    async def generate_follow_up(self, lead: Any, options: Optional[dict] = None) -> MessageResult:
        options = options or {}
        prompt = build_follow_up_prompt(
            build_lead_context(lead),
            language=options.get("language", "english"),
            tone=options.get("tone", "friendly"),
            days_since_contact=int(options.get("days_since_contact", 3)),
            previous_context=options.get("previous_context", ""),
        )
        return await self._complete(prompt, "follow_up", lead_id=getattr(lead, "id", None))

    async def generate_outreach(self, lead: Any, options: Optional[dict] = None) -> MessageResult:
        options = options or {}
        prompt = build_outreach_prompt(
            build_lead_context(lead),
            language=options.get("language", "english"),
            tone=options.get("tone", "professional"),
            platform=options.get("platform", "whatsapp"),
        )
        return await self._complete(prompt, "outreach", lead_id=getattr(lead, "id", None))

    async def _complete(self, prompt: str, message_type: str, lead_id: Optional[int] = None) -> MessageResult:
        if not self.api_key or self.client is None:
            logger.warning("OpenAI API key not configured")
            return MessageResult(success=False, type=message_type, error="OpenAI API key not configured")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": MESSAGE_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=300,
                temperature=0.7,
            )
        except Exception as e:
            # openai raises its own hierarchy plus httpx transport errors
            logger.error(f"OpenAI request failed for lead {lead_id}: {e}")
            return MessageResult(success=False, type=message_type, error=str(e))

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            logger.warning(f"OpenAI returned an empty {message_type} message for lead {lead_id}")
            return MessageResult(success=False, type=message_type, error="Empty response from model")

        usage = getattr(response, "usage", None)
        return MessageResult(
            success=True,
            type=message_type,
            message=content,
            tokens_used=getattr(usage, "total_tokens", None),
        )
