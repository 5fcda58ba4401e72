from abc import ABC, abstractmethod
from typing import List, Type, TypeVar

from pydantic import BaseModel

# Generic type variable for the Pydantic model expected in structured responses.
T = TypeVar("T", bound=BaseModel)

class LLMProvider(ABC):
    """
    Abstract Base Class interface that defines the contract for any
    vision-capable LLM provider used by the image analysis service.
    """

    @abstractmethod
    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = 0.0
    ) -> T:
        """
        Generates a response strictly matching the Pydantic 'response_model'.
        Messages may carry image parts (OpenAI content-part format).
        """
        pass


class LLMUnavailableError(RuntimeError):
    """Raised when no provider is configured (e.g. missing API key)."""


class UnavailableLLMProvider(LLMProvider):
    """
    Null provider selected at startup when no API key is configured.
    Every call fails fast so callers substitute their fallback.
    """

    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = 0.0
    ) -> T:
        raise LLMUnavailableError("No LLM provider configured (OPENAI_API_KEY missing).")
