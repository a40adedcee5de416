"""LLM response generator"""

from functools import lru_cache
from typing import List, Dict, Optional
from openai import OpenAI
import tiktoken
import logging
from talktofolder.rag.config import rag_config
from talktofolder.rag.prompt_templates import EMPTY_COMPLETION_REPLY

logger = logging.getLogger(__name__)


class Generator:
    """Chat-completion gateway"""

    def __init__(self, client: Optional[OpenAI] = None):
        self._client = client
        self.model = rag_config.llm_model
        self.max_tokens = rag_config.fallback_max_tokens
        self.temperature = rag_config.fallback_temperature

        self._encoding = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=rag_config.openai_api_key or None)
        return self._client

    @property
    def encoding(self):
        """Token counter, loaded on first use"""
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self.model)
            except KeyError:
                self._encoding = tiktoken.get_encoding("cl100k_base")
        return self._encoding

    def count_tokens(self, text: str) -> int:
        """Count tokens in text"""
        try:
            return len(self.encoding.encode(text))
        except Exception as e:
            logger.warning(f"Error counting tokens: {e}")
            # Rough estimate: 1 token ≈ 4 characters
            return len(text) // 4

    def count_messages_tokens(self, messages: List[Dict[str, str]]) -> int:
        """Count tokens in message list"""
        total = 0
        for message in messages:
            total += 4  # Overhead per message
            for value in message.values():
                total += self.count_tokens(str(value))
        total += 2  # Overhead for entire request
        return total

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Generate a single completion

        Args:
            system_prompt: System instructions, including any context
            user_message: The user's turn
            temperature: Sampling temperature (default: from config)
            max_tokens: Max tokens to generate (default: from config)

        Returns:
            The completion text
        """
        temperature = self.temperature if temperature is None else temperature
        max_tokens = max_tokens or self.max_tokens

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message}
        ]

        try:
            input_tokens = self.count_messages_tokens(messages)
            logger.info(f"Generating response with {input_tokens} input tokens")

            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )

            text = response.choices[0].message.content if response.choices else None
            text = text or EMPTY_COMPLETION_REPLY

            usage = response.usage
            total_tokens = usage.total_tokens if usage else input_tokens + self.count_tokens(text)
            logger.info(f"Generated response: {len(text)} chars, {total_tokens} total tokens")

            return text

        except Exception as e:
            logger.error(f"Error generating response: {e}")
            raise


@lru_cache
def get_generator() -> Generator:
    """Get the shared generator"""
    return Generator()
