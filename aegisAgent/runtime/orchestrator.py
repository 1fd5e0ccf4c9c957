"""
Generation orchestrator - the tool loop for one conversational turn.

Start → Generate → (tool calls? → ExecuteTools → Generate) → Finish

Every turn is persisted as soon as it is produced, so a crash mid-loop leaves
a consistent partial history. Provider failures are not retried here; the
router already failed over and whatever it raises propagates to the caller.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from langchain_core.messages import AIMessage, AIMessageChunk

from aegisAgent.agents.prompts import DEFAULT_SYSTEM_PROMPT
from aegisAgent.agents.schema import AgentProfile
from aegisAgent.context.manager import ContextWindowManager
from aegisAgent.context.messages import Turn, stringify_content, to_langchain_messages, turn_from_ai_message
from aegisAgent.context.token_tracker import TokenUsage, extract_token_usage
from aegisAgent.models.router import ProviderRouter
from aegisAgent.persistence.conversation_store import ConversationStore
from aegisAgent.streaming.session import StreamSession, StreamState
from aegisAgent.tools.invoker import ToolInvoker
from aegisAgent.tools.result import ToolCall, ToolResult
from aegisAgent.utils.error_handler import MaxStepsExceededError
from aegisAgent.utils.logging_utils import log_agent_response, log_user_message

LOGGER = logging.getLogger("aegis.runtime.orchestrator")

DEFAULT_MAX_STEPS = 10

ChunkCallback = Callable[[str, str, StreamSession], None]


@dataclass
class TurnOutcome:
    """What one run of the tool loop produced."""
    response: str
    turns: List[Turn] = field(default_factory=list)
    steps: int = 0
    cancelled: bool = False
    usage: List[TokenUsage] = field(default_factory=list)
    summary: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return sum(u.total_tokens for u in self.usage)


class GenerationOrchestrator:
    """Drives generate → tool calls → tool results → generate for one turn.

    Tool calls of one round run sequentially. A failing or denied tool becomes
    the content of its tool turn and the loop continues. Exceeding
    ``max_steps`` generations raises :class:`MaxStepsExceededError`.
    """

    def __init__(
        self,
        router: ProviderRouter,
        context: ContextWindowManager,
        invoker: ToolInvoker,
        store: ConversationStore,
        profile: Optional[AgentProfile] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        context_window: Optional[int] = None,
    ):
        self.router = router
        self.context = context
        self.invoker = invoker
        self.store = store
        self.profile = profile
        self.max_steps = max_steps
        self.context_window = context_window

    @property
    def system_prompt(self) -> str:
        if self.profile and self.profile.system_prompt:
            return self.profile.system_prompt
        return DEFAULT_SYSTEM_PROMPT

    def _provider_name(self) -> Optional[str]:
        return self.profile.provider if self.profile else None

    def _model(self) -> Optional[str]:
        return self.profile.model if self.profile else None

    def _window_size(self) -> int:
        if self.context_window:
            return self.context_window
        return self.router.resolve(self._provider_name()).context_window

    def _tools(self):
        allowlist = self.profile.tools if self.profile else None
        return self.invoker.registry.allowed_tools(allowlist)

    async def run(
        self,
        prompt: str,
        conversation_id: str,
        with_storage: bool = True,
        stream: Optional[StreamSession] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> TurnOutcome:
        """Run the loop for ``prompt``.

        With ``with_storage=False`` existing history is still read but nothing
        is written. With a ``stream`` session, deltas are appended to it and
        ``on_chunk(delta, full_text, session)`` is called after each append.
        """
        log_user_message(LOGGER, prompt)
        history = self.store.turns(conversation_id) if with_storage else self._history(conversation_id)
        outcome = TurnOutcome(response="")

        if stream is not None:
            if stream.is_cancelled():
                LOGGER.info("Stream cancelled before generation started")
                outcome.cancelled = True
                return outcome
            if stream.state is StreamState.IDLE:
                stream.start()

        produced: List[Turn] = []
        self._record(conversation_id, Turn.user(prompt), produced, with_storage)

        # Only earlier history is compressed; this turn's tool results stay verbatim
        prior = self.context.compress_tool_results(history)
        tools = self._tools()
        allowed = {tool.name for tool in tools}

        try:
            while outcome.steps < self.max_steps:
                outcome.steps += 1
                messages = await self._build_messages(conversation_id, prior + produced, with_storage, outcome)

                if stream is not None:
                    message, text, cancelled = await self._stream_generation(messages, tools, stream, on_chunk)
                else:
                    message = await self.router.generate(
                        self.system_prompt,
                        messages,
                        tools,
                        model=self._model(),
                        provider=self._provider_name(),
                    )
                    text, cancelled = stringify_content(message.content), False

                usage = extract_token_usage(message) if message is not None else None
                if usage is not None:
                    outcome.usage.append(usage)

                if cancelled:
                    # Partial tool calls are dropped so the history stays valid
                    turn = Turn.assistant(
                        text,
                        is_complete=False,
                        cancelled=True,
                        metadata={"streamed": True, "is_complete": False, "cancelled": True},
                    )
                    self._record(conversation_id, turn, produced, with_storage)
                    outcome.response = text
                    outcome.cancelled = True
                    break

                metadata = {"streamed": True, "is_complete": True, "cancelled": False} if stream is not None else {}
                turn = turn_from_ai_message(message, metadata=metadata)
                self._record(conversation_id, turn, produced, with_storage)

                if not turn.tool_calls:
                    outcome.response = turn.content
                    break

                LOGGER.info(f"Step {outcome.steps}: executing {len(turn.tool_calls)} tool call(s)")
                for index, raw_call in enumerate(turn.tool_calls):
                    if self._stream_cancelled(stream, outcome):
                        break
                    call = ToolCall.from_dict(raw_call, index)
                    if call.name not in allowed:
                        result = ToolResult.failure(f"Tool not available to this agent: {call.name}")
                    else:
                        result = await self.invoker.invoke(call, conversation_id)
                    tool_turn = Turn.tool(result.to_content(), call.name, call.id, metadata=result.as_dict())
                    self._record(conversation_id, tool_turn, produced, with_storage)

                if self._stream_cancelled(stream, outcome):
                    LOGGER.info(f"Stream {stream.id} cancelled between generations, stopping at step {outcome.steps}")
                    break
            else:
                LOGGER.error(f"Tool loop hit max_steps={self.max_steps}")
                raise MaxStepsExceededError(self.max_steps)
        finally:
            if stream is not None:
                stream.complete()

        outcome.turns = produced
        log_agent_response(LOGGER, outcome.response)
        return outcome

    @staticmethod
    def _stream_cancelled(stream: Optional[StreamSession], outcome: TurnOutcome) -> bool:
        """Mark ``outcome`` cancelled with the buffered text once ``stream`` is cancelled."""
        if stream is None or not stream.is_cancelled():
            return False
        outcome.cancelled = True
        outcome.response = stream.read()
        return True

    def _history(self, conversation_id: str) -> List[Turn]:
        if self.store.get_conversation(conversation_id) is None:
            return []
        return self.store.turns(conversation_id)

    def _record(self, conversation_id: str, turn: Turn, produced: List[Turn], with_storage: bool) -> None:
        produced.append(turn)
        if with_storage:
            self.store.append_turn(conversation_id, turn)

    async def _build_messages(self, conversation_id, turns, with_storage, outcome):
        conversation = self.store.get_conversation(conversation_id)
        summary = conversation.summary if conversation else None
        covers = conversation.summary_covers if conversation else 0
        memories = self.store.memories(conversation_id) if conversation else []

        report = await self.context.build_with_summary(
            self.system_prompt,
            turns,
            self._window_size(),
            summary=summary,
            memories=memories,
            summary_covers=covers,
        )
        if report.dropped:
            LOGGER.info(f"Context window dropped {len(report.dropped)} turn(s), {report.tokens_used} tokens used")
        if report.new_summary:
            outcome.summary = report.summary
            if with_storage and conversation is not None:
                self.store.set_summary(conversation_id, report.summary, covers=report.summary_covers)
        return to_langchain_messages(report.messages)

    async def _stream_generation(self, messages, tools, session: StreamSession, on_chunk: Optional[ChunkCallback]):
        """Consume the provider stream into ``session``.

        Returns the merged message, the text of this generation and whether
        the session was cancelled. Cancellation is checked after each append.
        """
        merged: Optional[AIMessageChunk] = None
        text = ""
        stream = self.router.stream(
            self.system_prompt,
            messages,
            tools,
            model=self._model(),
            provider=self._provider_name(),
        )
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                merged = chunk if merged is None else merged + chunk
                delta = stringify_content(chunk.content)
                if delta:
                    session.append(delta)
                    text += delta
                    if on_chunk is not None:
                        on_chunk(delta, session.read(), session)
                if session.is_cancelled():
                    LOGGER.info(f"Stream {session.id} cancelled, stopping generation")
                    return merged, text, True

        if merged is None:
            merged = AIMessageChunk(content="")
        return AIMessage(
            content=text,
            tool_calls=merged.tool_calls,
            usage_metadata=merged.usage_metadata,
            response_metadata=merged.response_metadata,
        ), text, False
