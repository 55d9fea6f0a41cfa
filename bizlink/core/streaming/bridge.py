"""
Streaming bridge: relays a generation provider's token stream to one client
and persists the assembled assistant message once the stream completes.

Outcomes of one `stream_reply` call:
  - completed: every token, then END; exactly one assistant message persisted
  - failed: the tokens seen so far, then one ERROR; nothing persisted
  - cancelled (consumer went away): forwarding stops; nothing persisted
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from bizlink.core.llm.base import LLMClient
from bizlink.core.memory.store import ConversationStore
from bizlink.core.observability.metrics import record_persist_failure, record_stream_result
from bizlink.core.observability.tracing import stream_trace

logger = logging.getLogger(__name__)

TOKEN = "token"
END = "end"
ERROR = "error"

STREAM_ERROR_MESSAGE = "AI Stream Error"


@dataclass(frozen=True)
class StreamEvent:
    kind: str  # token | end | error
    text: str = ""


class StreamingBridge:
    """
    One instance per application; every call to `stream_reply` keeps its own
    buffer, so concurrent streams never share state.
    """

    def __init__(
        self,
        provider: LLMClient,
        store: ConversationStore,
        persist_retries: int = 2,
        persist_retry_delay: float = 0.5,
    ) -> None:
        self.provider = provider
        self.store = store
        self.persist_retries = persist_retries
        self.persist_retry_delay = persist_retry_delay
        self._pending: Set[asyncio.Task] = set()

    async def stream_reply(
        self,
        conversation_id: int,
        prompt_turns: Sequence[Dict[str, str]],
    ) -> AsyncIterator[StreamEvent]:
        """
        Lazy, finite, not restartable sequence of events for one reply.

        prompt_turns is the prior role/content history followed by the newest
        user turn. The blocking provider iterator runs in the threadpool.
        """
        buffer: List[str] = []
        with stream_trace(conversation_id) as trace:
            try:
                tokens = iterate_in_threadpool(self.provider.stream(list(prompt_turns)))
                async for token in tokens:
                    if not token:
                        continue
                    buffer.append(token)
                    trace["tokens"] += 1
                    yield StreamEvent(TOKEN, token)
            except (GeneratorExit, asyncio.CancelledError):
                # Client went away: stop forwarding, drop the partial buffer.
                record_stream_result("cancelled")
                logger.info(
                    "Stream for conversation %s cancelled after %d tokens; partial reply discarded",
                    conversation_id,
                    len(buffer),
                )
                raise
            except Exception as e:
                trace["outcome"] = "failed"
                record_stream_result("failed")
                logger.error(
                    "Generation failed for conversation %s after %d tokens: %s",
                    conversation_id,
                    len(buffer),
                    e,
                    exc_info=True,
                )
                yield StreamEvent(ERROR, STREAM_ERROR_MESSAGE)
                return

            full_text = "".join(buffer)
            persist_task = asyncio.create_task(self._persist(conversation_id, full_text))
            self._pending.add(persist_task)
            persist_task.add_done_callback(self._pending.discard)
            trace["outcome"] = "completed"
            record_stream_result("completed")
            # The task keeps running even if the consumer stops right after END.
            yield StreamEvent(END)
            await asyncio.shield(persist_task)

    def _last_seq(self, conversation_id: int) -> int:
        messages = self.store.list_messages(conversation_id)
        return messages[-1].seq if messages else 0

    def _already_stored(self, conversation_id: int, content: str, after_seq: int) -> bool:
        """True if an earlier attempt wrote the reply before failing."""
        return any(
            m.seq > after_seq and m.role == "assistant" and m.content == content
            for m in self.store.list_messages(conversation_id)
        )

    async def _persist(self, conversation_id: int, content: str) -> bool:
        """
        Append the assistant message, retrying before flagging the failure.

        A retry first checks for the reply past the seq seen before the first
        attempt, so a write that committed and then raised is not repeated.
        """
        if not content:
            logger.warning("Empty reply for conversation %s; nothing to persist", conversation_id)
            return False
        attempts = self.persist_retries + 1
        start_seq: Optional[int] = None
        for attempt in range(1, attempts + 1):
            try:
                if start_seq is None:
                    start_seq = await run_in_threadpool(self._last_seq, conversation_id)
                elif await run_in_threadpool(self._already_stored, conversation_id, content, start_seq):
                    logger.info("Reply for conversation %s was stored by an earlier attempt", conversation_id)
                    return True
                await run_in_threadpool(self.store.append_message, conversation_id, "assistant", content)
                return True
            except Exception as e:
                logger.warning(
                    "Persisting reply for conversation %s failed (attempt %d/%d): %s",
                    conversation_id,
                    attempt,
                    attempts,
                    e,
                )
                if attempt < attempts:
                    await asyncio.sleep(self.persist_retry_delay * attempt)
        record_persist_failure(conversation_id)
        return False

    async def drain(self) -> None:
        """Wait for outstanding persistence tasks (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
