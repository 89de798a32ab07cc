"""Generation session: one node-creation request from context to persisted answer.

States run ASSEMBLING -> STREAMING -> FINALIZING -> DONE. ERRORED is
terminal and reachable from STREAMING and FINALIZING. The node exists
from the end of ASSEMBLING onward; everything after that runs in its own
task and pushes events into an unbounded queue, so a consumer that stops
reading never stalls or cancels the write-back.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from canopy.errors import UpstreamGenerationError
from canopy.events.log import EventLog
from canopy.forest.store import ForestStore
from canopy.generation.collaborator import ModelCollaborator
from canopy.generation.context import AssembledContext, fallback_line
from canopy.models import NodeCompletedPayload

logger = logging.getLogger(__name__)

SessionState = Literal["ASSEMBLING", "STREAMING", "FINALIZING", "DONE", "ERRORED"]


@dataclass
class SessionEvent:
    """One item in the per-request event sequence (mirrors the SSE event names)."""

    type: Literal["node_created", "text_delta", "message_stop", "error"]
    data: dict[str, Any] = field(default_factory=dict)


class GenerationSession:
    """Streams the answer for an already-created node and writes it back.

    Created by GenerationService once the node row exists. ``start()``
    launches the background task; ``events()`` yields what it produces,
    ending with ``message_stop`` or ``error``.
    """

    def __init__(
        self,
        *,
        owner_id: str,
        node: dict,
        context: AssembledContext,
        provider: str,
        model: str,
        collaborator: ModelCollaborator,
        forest: ForestStore,
        event_log: EventLog,
    ) -> None:
        self.owner_id = owner_id
        self.node_id: str = node["node_id"]
        self.state: SessionState = "ASSEMBLING"
        self._node = node
        self._context = context
        self._provider = provider
        self._model = model
        self._collaborator = collaborator
        self._forest = forest
        self._events = event_log
        self._queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._parts: list[str] = []
        self._task: asyncio.Task | None = None

        self._queue.put_nowait(
            SessionEvent(
                type="node_created",
                data={
                    "node_id": self.node_id,
                    "citations": [c.model_dump() for c in context.citations],
                    "skipped_references": [
                        r.model_dump() for r in context.skipped_references
                    ],
                },
            )
        )

    @property
    def partial_text(self) -> str:
        return "".join(self._parts)

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"generate-{self.node_id}")
        return self._task

    async def events(self) -> AsyncIterator[SessionEvent]:
        """Drain the session's events until the terminal one."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def _run(self) -> None:
        self.state = "STREAMING"
        try:
            async for chunk in self._collaborator.stream(
                self._node["user_prompt"],
                self._model,
                self._context.text or None,
                provider=self._provider,
            ):
                if chunk.type == "text_delta" and chunk.text:
                    self._parts.append(chunk.text)
                    self._queue.put_nowait(
                        SessionEvent(type="text_delta", data={"text": chunk.text})
                    )
                elif chunk.type == "error":
                    raise UpstreamGenerationError(chunk.text, node_id=self.node_id)
                elif chunk.result is not None and chunk.result.usage:
                    logger.info(
                        "Node %s used %s via %s/%s",
                        self.node_id,
                        chunk.result.usage,
                        self._provider,
                        chunk.result.model,
                    )

            self.state = "FINALIZING"
            summary = await self._derive_summary(self.partial_text)
            await self._finish(self.partial_text, summary, None)
        except UpstreamGenerationError as e:
            logger.warning("Upstream error for node %s: %s", self.node_id, e)
            await self._fail(str(e))
        except asyncio.CancelledError:
            logger.warning("Generation for node %s cancelled, keeping partial text", self.node_id)
            await self._fail("Generation cancelled")
            raise
        except Exception as e:
            logger.exception("Generation for node %s failed", self.node_id)
            await self._fail(f"Generation failed: {e}")
        finally:
            self._queue.put_nowait(None)

    async def _derive_summary(self, response: str) -> str:
        prompt = self._node["user_prompt"]
        if self._node["parent_id"] is None:
            return await self._collaborator.title_for(prompt, response)
        return await self._collaborator.summarize(None, prompt, response)

    async def _finish(self, response: str, summary: str | None, error: str | None) -> None:
        await self._complete(response, summary, error)
        self.state = "DONE"
        node = await self._forest.get_node(self.owner_id, self.node_id)
        self._queue.put_nowait(
            SessionEvent(
                type="message_stop",
                data=node or {"node_id": self.node_id, "deleted": True},
            )
        )

    async def _fail(self, error: str) -> None:
        """Persist what streamed so far plus the error, then emit a terminal error event."""
        self.state = "ERRORED"
        partial = self.partial_text
        response = f"{partial}\n\n{error}" if partial else error
        try:
            await self._complete(response, fallback_line(self._node["user_prompt"]), error)
        except Exception:
            logger.exception("Could not persist failed generation for node %s", self.node_id)
        node = await self._forest.get_node(self.owner_id, self.node_id)
        self._queue.put_nowait(
            SessionEvent(
                type="error",
                data={"node_id": self.node_id, "error": error, "node": node},
            )
        )

    async def _complete(self, response: str, summary: str | None, error: str | None) -> None:
        payload = NodeCompletedPayload(
            node_id=self.node_id,
            ai_response=response,
            summary=summary,
            error=error,
        )
        await self._events.emit(self.owner_id, self.node_id, "NodeCompleted", payload)
