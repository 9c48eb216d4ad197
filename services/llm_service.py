# services/llm_service.py
import asyncio
import logging
import os
import time
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional, Sequence

import openai
from dotenv import load_dotenv
from openai import AsyncOpenAI

from models import Message, MessageSender

load_dotenv()

logger = logging.getLogger(__name__)

# Most recent messages sent to the provider as context
HISTORY_WINDOW = 10

STORE_KNOWLEDGE = {
    "store_name": "TechMart E-Commerce",
    "shipping": {
        "policy": "Free shipping on orders over $50. Standard shipping takes 5-7 business days. "
                  "Express shipping (2-3 days) available for $15.",
        "international": "We ship to most countries. International orders take 10-15 business days.",
    },
    "returns": {
        "policy": "30-day return policy for unused items in original packaging. "
                  "Refunds processed within 5-7 business days after receiving the return.",
        "process": "Contact support with your order number to initiate a return. "
                   "We'll provide a prepaid shipping label.",
    },
    "support": {
        "hours": "Monday-Friday: 9 AM - 6 PM EST. Weekend: 10 AM - 4 PM EST",
        "contact": "Email: support@techmart.com | Phone: 1-800-TECH-MART",
    },
    "products": {
        "categories": "Electronics, Home & Garden, Fashion, Sports & Outdoors",
        "warranty": "All electronics come with a 1-year manufacturer warranty",
    },
}


def build_system_prompt(knowledge: Dict = STORE_KNOWLEDGE) -> str:
    return (
        f"You are a helpful support agent for {knowledge['store_name']}, a small e-commerce store. "
        "Answer clearly and concisely.\n\n"
        "Store Information:\n"
        f"- Shipping: {knowledge['shipping']['policy']} {knowledge['shipping']['international']}\n"
        f"- Returns: {knowledge['returns']['policy']}\n"
        f"- Return Process: {knowledge['returns']['process']}\n"
        f"- Support Hours: {knowledge['support']['hours']}\n"
        f"- Contact: {knowledge['support']['contact']}\n"
        f"- Product Categories: {knowledge['products']['categories']}\n"
        f"- Warranty: {knowledge['products']['warranty']}\n\n"
        "Guidelines:\n"
        "- Be friendly and professional\n"
        "- Provide accurate information based on the store policies above\n"
        "- If you don't know something specific, direct the customer to contact support\n"
        "- Keep responses concise but helpful"
    )


SYSTEM_PROMPT = build_system_prompt()


class ReplyErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    SERVER_ERROR = "server_error"
    MALFORMED_RESPONSE = "malformed_response"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


FALLBACK_MESSAGES = {
    ReplyErrorKind.UNAVAILABLE: "I apologize, but the chat service is currently unavailable. "
                                "Please try again later or contact support directly.",
    ReplyErrorKind.RATE_LIMITED: "Our chat service is experiencing high demand. "
                                 "Please try again in a moment.",
    ReplyErrorKind.AUTH_FAILED: "Chat service authentication failed. Please contact support.",
    ReplyErrorKind.SERVER_ERROR: "Our chat service is having technical difficulties. "
                                 "Please try again in a few minutes.",
    ReplyErrorKind.MALFORMED_RESPONSE: "I'm sorry, I couldn't come up with an answer to that. "
                                       "Could you try rephrasing your question?",
    ReplyErrorKind.TIMEOUT: "I apologize, but the request took too long. "
                            "Please try asking your question again.",
    ReplyErrorKind.UNKNOWN: "I apologize, but I'm having trouble processing your request right now. "
                            "Please try again or contact our support team directly.",
}


class ProviderError(Exception):
    """A failed provider call, already classified."""

    def __init__(self, kind: ReplyErrorKind, detail: str = ""):
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail

    @property
    def user_message(self) -> str:
        return FALLBACK_MESSAGES[self.kind]


def classify_error(error: BaseException) -> ReplyErrorKind:
    """
    Map any exception raised around a provider call to a ReplyErrorKind.
    Outside cancellation (asyncio.CancelledError) is not classified: it
    propagates so the caller can cancel the request.
    """
    if isinstance(error, ProviderError):
        return error.kind
    # APITimeoutError subclasses APIConnectionError, so it goes first
    if isinstance(error, (asyncio.TimeoutError, openai.APITimeoutError)):
        return ReplyErrorKind.TIMEOUT
    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status == 429:
            return ReplyErrorKind.RATE_LIMITED
        if status in (401, 403):
            return ReplyErrorKind.AUTH_FAILED
        if status >= 500:
            return ReplyErrorKind.SERVER_ERROR
        return ReplyErrorKind.UNKNOWN
    if isinstance(error, openai.APIConnectionError):
        return ReplyErrorKind.SERVER_ERROR
    if isinstance(error, openai.APIResponseValidationError):
        return ReplyErrorKind.MALFORMED_RESPONSE
    return ReplyErrorKind.UNKNOWN


def to_provider_messages(history: Sequence[Message], user_message: str,
                         system_prompt: str = SYSTEM_PROMPT,
                         window: int = HISTORY_WINDOW) -> List[Dict[str, str]]:
    """
    system prompt, then the last `window` prior messages, then the new user message.
    """
    recent = list(history)[-window:] if window > 0 else []
    messages = [{"role": "system", "content": system_prompt}]
    for msg in recent:
        role = "user" if msg.sender == MessageSender.USER else "assistant"
        messages.append({"role": role, "content": msg.text})
    messages.append({"role": "user", "content": user_message})
    return messages


class LLMService:
    """
    Reply generator over an OpenAI-compatible chat completions API.
    Configuration comes from .env; constructor arguments override it.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        system_prompt: str = SYSTEM_PROMPT,
        client=None,
    ):
        if api_key is None:
            api_key = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY", "")
        self.api_key = api_key.strip()
        self.model_name = model_name or os.getenv("LLM_MODEL", "gpt-3.5-turbo")
        self.base_url = base_url or os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
        self.max_tokens = max_tokens or int(os.getenv("LLM_MAX_TOKENS", "500"))
        self.temperature = temperature if temperature is not None else float(os.getenv("LLM_TEMPERATURE", "0.7"))
        # seconds
        self.timeout = timeout if timeout is not None else int(os.getenv("LLM_TIMEOUT_MS", "30000")) / 1000
        self.system_prompt = system_prompt

        self.client = client
        if self.client is None and self.api_key:
            # One attempt per user message: the SDK's own retries are off
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )

        if not self.api_key:
            logger.warning("[LLM] LLM_API_KEY not set. Replies will use the unavailable message.")
        else:
            logger.info("[LLM] Service initialized: model=%s base_url=%s", self.model_name, self.base_url)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Single provider call.

        Args:
            messages: [{"role": "system" | "user" | "assistant", "content": "..."}]
            temperature: Override temperature (optional)
            max_tokens: Override max_tokens (optional)

        Returns:
            The reply text, stripped.

        Raises:
            ProviderError: on any failure, already classified.
        """
        if not self.is_configured():
            raise ProviderError(ReplyErrorKind.UNAVAILABLE)

        logger.debug("[LLM] Generating with model %s, %d messages", self.model_name, len(messages))
        request_start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model_name,
                    messages=messages,
                    temperature=temperature if temperature is not None else self.temperature,
                    max_tokens=max_tokens or self.max_tokens,
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            kind = classify_error(e)
            logger.error("[LLM] Generation failed (%s): %s: %s", kind.value, type(e).__name__, e)
            raise ProviderError(kind, str(e)) from e

        request_time = (time.perf_counter() - request_start) * 1000
        reply = self._extract_reply(response)
        if not reply:
            logger.error("[LLM] Provider returned no reply text")
            raise ProviderError(ReplyErrorKind.MALFORMED_RESPONSE, "empty reply")

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(
                "[LLM] %.2fms, tokens prompt=%s completion=%s",
                request_time,
                getattr(usage, "prompt_tokens", "N/A"),
                getattr(usage, "completion_tokens", "N/A"),
            )
        return reply

    @staticmethod
    def _extract_reply(response) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            return ""
        return content.strip()

    async def generate_reply(self, history: Sequence[Message], user_message: str) -> str:
        """
        Reply to `user_message` given prior conversation `history`.
        Never raises: failures come back as a fixed, user-safe sentence.
        """
        if not self.is_configured():
            return FALLBACK_MESSAGES[ReplyErrorKind.UNAVAILABLE]

        messages = to_provider_messages(history, user_message, self.system_prompt)
        try:
            return await self.generate(messages)
        except ProviderError as e:
            return e.user_message
        except Exception:
            logger.exception("[LLM] Unexpected error building reply")
            return FALLBACK_MESSAGES[ReplyErrorKind.UNKNOWN]


@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    """
    Singleton factory for LLMService. Without an API key the service still
    exists and answers with the unavailable message.
    """
    return LLMService()
