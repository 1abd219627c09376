"""
OpenAI Client wrapper

Chat completions for the live pipeline. ``complete_json`` is the structured
entry point: it asks for a JSON object, validates it against a pydantic model
and returns None on any transport, timeout or validation failure.
"""

import asyncio
import json
from typing import List, Optional, Type, TypeVar

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from companion.core.config import settings
from companion.core.logging import get_logger

logger = get_logger(__name__)

ReplyT = TypeVar("ReplyT", bound=BaseModel)


class OpenAIClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self.timeout = timeout or settings.openai_timeout_s
        self.client = (
            AsyncOpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=1)
            if self.api_key
            else None
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def chat_completion(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.3,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Standard chat completion"""
        if not self.client:
            raise ValueError("OpenAI API key not provided")

        kwargs = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(**kwargs)
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"OpenAI Chat Error: {e}")
            raise

    async def complete_text(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> Optional[str]:
        """Plain text completion; None when the call fails"""
        if not self.is_configured:
            return None
        try:
            content = await asyncio.wait_for(
                self.chat_completion(messages, temperature=temperature, max_tokens=max_tokens),
                timeout=self.timeout,
            )
        except (OpenAIError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"OpenAI text completion failed: {e}")
            return None
        return content.strip() or None

    async def complete_json(
        self,
        messages: List[dict],
        reply_model: Type[ReplyT],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> Optional[ReplyT]:
        """JSON-mode completion validated against ``reply_model``"""
        if not self.is_configured:
            return None
        try:
            content = await asyncio.wait_for(
                self.chat_completion(
                    messages,
                    temperature=temperature,
                    json_mode=True,
                    max_tokens=max_tokens,
                ),
                timeout=self.timeout,
            )
        except (OpenAIError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"OpenAI JSON completion failed: {e}")
            return None

        if not content:
            return None
        try:
            return reply_model.model_validate(json.loads(content))
        except ValueError as e:
            # JSONDecodeError and pydantic ValidationError are both ValueErrors
            logger.warning(f"Rejected {reply_model.__name__} reply: {e}")
            return None
