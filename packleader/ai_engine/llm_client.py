"""
LLM Client Module
=================

Abstraction layer for tool-calling LLM APIs.

Supports:
- Anthropic API (Claude), the default provider
- OpenAI API and OpenAI-compatible endpoints (via LLM_API_BASE)

Design Decisions:
-----------------
1. Uses a common interface regardless of provider: the agent loop only sees
   LLMResponse and ToolCall, and asks the client to format follow-up messages
2. Uses the async SDK clients so tool execution and model calls share one
   event loop
3. Retries transient provider errors (rate limits, connection drops, 5xx)
   with exponential backoff
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import anthropic
import openai

from ..config import LLMConfig
from ..errors import LLMError


logger = logging.getLogger(__name__)


TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


@dataclass
class ToolCall:
    """One tool invocation requested by the model."""
    id: str
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class ToolOutcome:
    """The result of running one ToolCall, ready to send back to the model."""
    call: ToolCall
    content: str
    is_error: bool = False


@dataclass
class LLMResponse:
    """Container for LLM response data.

    Attributes:
        content: Text content of the response
        tool_calls: Tools the model wants to call before answering
        model: Model that generated the response
        prompt_tokens: Number of tokens in the prompt
        completion_tokens: Number of tokens in the completion
        finish_reason: Why the generation stopped
    """
    content: str = ""
    tool_calls: list = field(default_factory=list)
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str = ""

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class LLMClient:
    """Async client for tool-calling completions.

    Usage:
        client = LLMClient(config)
        response = await client.complete_with_tools(messages, system_prompt, tools)
        messages.append(client.assistant_message(response))
        messages.extend(client.tool_result_messages(outcomes))

    Messages are kept in the provider's own format; only this class builds them.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        config: LLMConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """Initialize the LLM client.

        Args:
            config: LLMConfig object with API settings
            sleep: Coroutine used for retry backoff
        """
        self.config = config
        self._sleep = sleep
        self._client = None

        if config.enabled and config.api_key:
            self._initialize_client()

    def _initialize_client(self) -> None:
        """Initialize the appropriate client based on provider."""
        if self.config.provider == "anthropic":
            self._client = anthropic.AsyncAnthropic(api_key=self.config.api_key)
        elif self.config.api_base:
            self._client = openai.AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base
            )
        else:
            self._client = openai.AsyncOpenAI(api_key=self.config.api_key)

    @property
    def is_available(self) -> bool:
        """Check if the LLM client is properly configured."""
        return self.config.enabled and self._client is not None

    @property
    def is_anthropic(self) -> bool:
        return self.config.provider == "anthropic"

    async def complete_with_tools(
        self,
        messages: list,
        system_prompt: str,
        tools: list
    ) -> LLMResponse:
        """Send one turn of the conversation and parse text and tool calls.

        Args:
            messages: Conversation so far, in provider format
            system_prompt: System prompt
            tools: Provider-neutral definitions ({name, description, input_schema})

        Returns:
            LLMResponse with normalized tool calls

        Raises:
            LLMError: If the client is unavailable or every attempt failed
        """
        if not self.is_available:
            raise LLMError("LLM client not available. Check configuration and API key.")

        call = self._anthropic_turn if self.is_anthropic else self._openai_turn

        for attempt in range(self.MAX_ATTEMPTS):
            try:
                return await call(messages, system_prompt, tools)
            except TRANSIENT_ERRORS as e:
                if attempt < self.MAX_ATTEMPTS - 1:
                    wait_time = 2 ** attempt
                    logger.warning("LLM request failed (%s), retrying in %ss", e, wait_time)
                    await self._sleep(wait_time)
                else:
                    raise LLMError(
                        f"{self.config.provider} API error after {self.MAX_ATTEMPTS} attempts: {e}"
                    ) from e
            except (anthropic.APIError, openai.APIError) as e:
                raise LLMError(f"{self.config.provider} API error: {e}") from e

    # ------------------------------------------------------------------
    # Anthropic
    # ------------------------------------------------------------------

    async def _anthropic_turn(self, messages, system_prompt, tools) -> LLMResponse:
        response = await self._client.messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            system=system_prompt,
            messages=messages,
            tools=tools,
        )

        content = ""
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                content += block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))

        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            model=response.model,
            prompt_tokens=response.usage.input_tokens if response.usage else 0,
            completion_tokens=response.usage.output_tokens if response.usage else 0,
            finish_reason=response.stop_reason or "",
        )

    # ------------------------------------------------------------------
    # OpenAI
    # ------------------------------------------------------------------

    async def _openai_turn(self, messages, system_prompt, tools) -> LLMResponse:
        response = await self._client.chat.completions.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            messages=[{"role": "system", "content": system_prompt}] + messages,
            tools=[
                {
                    "type": "function",
                    "function": {
                        "name": t["name"],
                        "description": t["description"],
                        "parameters": t["input_schema"],
                    },
                }
                for t in tools
            ],
        )

        choice = response.choices[0]
        tool_calls = []
        for call in choice.message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Malformed arguments for tool %s", call.function.name)
                arguments = {}
            tool_calls.append(ToolCall(id=call.id, name=call.function.name, arguments=arguments))

        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=tool_calls,
            model=response.model,
            prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
            completion_tokens=response.usage.completion_tokens if response.usage else 0,
            finish_reason=choice.finish_reason or "",
        )

    # ------------------------------------------------------------------
    # Message formatting
    # ------------------------------------------------------------------

    def assistant_message(self, response: LLMResponse) -> dict:
        """Format the model's turn so it can be appended to the conversation."""
        if self.is_anthropic:
            blocks = []
            if response.content:
                blocks.append({"type": "text", "text": response.content})
            for call in response.tool_calls:
                blocks.append({
                    "type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments,
                })
            return {"role": "assistant", "content": blocks}

        message = {"role": "assistant", "content": response.content or None}
        if response.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in response.tool_calls
            ]
        return message

    def tool_result_messages(self, outcomes: list) -> list:
        """Format tool outcomes as the messages that answer the tool calls."""
        if self.is_anthropic:
            return [{
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": o.call.id,
                        "content": o.content,
                        "is_error": o.is_error,
                    }
                    for o in outcomes
                ],
            }]
        return [
            {"role": "tool", "tool_call_id": o.call.id, "content": o.content}
            for o in outcomes
        ]
