import logging
from typing import List, Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from ..interface import LLMProvider
from ...config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model_name: str = settings.OPENAI_VISION_MODEL,
        max_tokens: int = settings.LLM_MAX_TOKENS,
        max_retries: int = settings.MAX_RETRIES,
        timeout: float = settings.ANALYSIS_TIMEOUT_SECONDS,
    ):
        self.client = AsyncOpenAI(api_key=api_key, max_retries=max_retries, timeout=timeout)
        self.model_name = model_name
        self.max_tokens = max_tokens

    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = 0.0
    ) -> T:
        completion = await self.client.beta.chat.completions.parse(
            model=self.model_name,
            messages=messages,
            response_format=response_model,
            temperature=temperature,
            max_tokens=self.max_tokens,
        )

        message = completion.choices[0].message
        if message.parsed is None:
            # Refusals and truncated output come back unparsed
            raise ValueError(f"Model returned no structured output: {message.refusal or 'empty response'}")

        logger.debug(f"{self.model_name} returned {response_model.__name__}")
        return message.parsed
