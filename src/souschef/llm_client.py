"""LLM client abstraction and its Groq implementation.

The orchestrator only talks to the ``LLMClient`` protocol, so tests can
substitute a scripted client and the provider stays swappable.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import groq
from groq import AsyncGroq

from .errors import UpstreamModelError

DEFAULT_MODEL = "llama-3.3-70b-versatile"


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class Completion:
    """One model response: text, tool calls, or both."""

    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None

    def to_message(self) -> dict[str, Any]:
        """Render as an assistant message for the next request."""
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in self.tool_calls
            ]
        return message


class LLMClient(Protocol):
    """A chat completion endpoint."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion: ...


class GroqLLMClient:
    """LLMClient implementation that wraps AsyncGroq.

    Provider errors are re-raised as UpstreamModelError so callers can tell
    a failed request from a model that simply declined.

    Example:
        from groq import AsyncGroq
        from souschef.llm_client import GroqLLMClient

        llm = GroqLLMClient(AsyncGroq(api_key="..."), model="llama-3.3-70b-versatile")
        completion = await llm.complete([{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
    ) -> None:
        """Initialize the Groq LLM client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
        """
        self._client = client
        self._model = model

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Send one chat completion request.

        Args:
            messages: Conversation messages in chat-completions format.
            tools: Optional function schemas the model may call.
            tool_choice: Optional tool choice ("auto", "none", ...).
            max_tokens: Optional completion token limit.
            temperature: Optional sampling temperature.

        Returns:
            The parsed Completion.

        Raises:
            UpstreamModelError: The provider request failed.
        """
        kwargs: dict[str, Any] = {"model": self._model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or "auto"
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except groq.APIError as e:
            raise UpstreamModelError(f"Groq request failed: {e}") from e

        choice = response.choices[0]
        message = choice.message
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in (message.tool_calls or [])
        ]
        return Completion(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
        )

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model
