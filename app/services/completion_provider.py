"""Streaming completion provider over a LangChain chat model."""

from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from typing import Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from app.schemas.chat_schema import Turn


class CompletionProvider(Protocol):
    """Anything that turns an ordered turn sequence into streamed text."""

    def stream(self, turns: Sequence[Turn]) -> AsyncIterator[str]:
        """Return a lazy sequence of text fragments."""
        ...


class LangChainCompletionProvider:
    """Completion provider backed by ``BaseChatModel.astream``."""

    def __init__(self, llm: BaseChatModel, system_prompt: str) -> None:
        self._llm = llm
        self._system_prompt = system_prompt

    async def stream(self, turns: Sequence[Turn]) -> AsyncIterator[str]:
        """Yield the text content of every chunk the model produces."""
        async for chunk in self._llm.astream(self.build_messages(turns)):
            content = chunk.content
            if isinstance(content, str):
                yield content
            else:
                # Anthropic streams content blocks
                yield "".join(
                    block.get("text", "") if isinstance(block, dict) else str(block)
                    for block in content
                )

    def build_messages(self, turns: Sequence[Turn]) -> list[BaseMessage]:
        """Convert turns to LangChain messages behind the system prompt."""
        system_time = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
        messages: list[BaseMessage] = [
            SystemMessage(
                content=self._system_prompt.replace("{system_time}", system_time)
            )
        ]
        for turn in turns:
            if turn.role == "user":
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
        return messages
