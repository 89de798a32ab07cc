"""Shared test helpers: event builders, a fake provider, and API helpers."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from httpx import AsyncClient

from canopy.events.log import EventLog
from canopy.forest.mutations import MutationEngine
from canopy.forest.store import ForestStore
from canopy.models import (
    Citation,
    EventEnvelope,
    FolderCreatedPayload,
    NodeCompletedPayload,
    NodeCreatedPayload,
)
from canopy.providers.base import (
    GenerationRequest,
    GenerationResult,
    LLMProvider,
    StreamChunk,
)


class FakeProvider(LLMProvider):
    """Test provider that returns canned responses.

    ``chunks`` are streamed as text deltas. If ``fail_after`` is set, the
    stream raises after that many chunks. ``reply`` is what non-streaming
    calls (summaries, titles) return; ``fail_generate`` makes them raise.
    """

    suggested_models = ["fake-model"]

    def __init__(
        self,
        chunks: list[str] | None = None,
        *,
        reply: str = "Fake summary",
        fail_after: int | None = None,
        fail_generate: bool = False,
    ) -> None:
        self.chunks = chunks if chunks is not None else ["Fake ", "response"]
        self.reply = reply
        self.fail_after = fail_after
        self.fail_generate = fail_generate
        self.requests: list[GenerationRequest] = []

    @property
    def name(self) -> str:
        return "fake"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self.fail_generate:
            raise RuntimeError("summary model down")
        return GenerationResult(
            content=self.reply,
            model=request.model,
            finish_reason="end_turn",
            usage={"input_tokens": 10, "output_tokens": 5},
        )

    async def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        for i, text in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("upstream exploded")
            yield StreamChunk(type="text_delta", text=text)
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise RuntimeError("upstream exploded")
        yield StreamChunk(
            type="message_stop",
            is_final=True,
            result=GenerationResult(
                content="".join(self.chunks),
                model=request.model,
                finish_reason="end_turn",
                usage={"input_tokens": 10, "output_tokens": 5},
            ),
        )


# -- Event builders --


def make_node_created_envelope(
    owner_id: str = "local",
    node_id: str | None = None,
    parent_id: str | None = None,
    user_prompt: str = "Hello",
    **payload_overrides: Any,
) -> EventEnvelope:
    """Create a NodeCreated EventEnvelope for testing."""
    node_id = node_id or str(uuid4())
    payload = NodeCreatedPayload(
        node_id=node_id,
        parent_id=parent_id,
        user_prompt=user_prompt,
        **payload_overrides,
    )
    return EventEnvelope(
        event_id=str(uuid4()),
        owner_id=owner_id,
        subject_id=node_id,
        timestamp=datetime.now(UTC),
        device_id="test",
        event_type="NodeCreated",
        payload=payload.model_dump(),
    )


def make_folder_created_envelope(
    owner_id: str = "local",
    folder_id: str | None = None,
    name: str = "Research",
    parent_id: str | None = None,
) -> EventEnvelope:
    folder_id = folder_id or str(uuid4())
    payload = FolderCreatedPayload(folder_id=folder_id, name=name, parent_id=parent_id)
    return EventEnvelope(
        event_id=str(uuid4()),
        owner_id=owner_id,
        subject_id=folder_id,
        timestamp=datetime.now(UTC),
        device_id="test",
        event_type="FolderCreated",
        payload=payload.model_dump(),
    )


# -- Seeding through the event log --


async def add_node(
    event_log: EventLog,
    parent_id: str | None = None,
    *,
    owner_id: str = "local",
    user_prompt: str = "Hello",
    ai_response: str | None = "Hi there",
    summary: str | None = None,
    folder_id: str | None = None,
    citations: list[Citation] | None = None,
) -> str:
    """Create (and, if ``ai_response`` is given, complete) a node. Returns its id."""
    node_id = str(uuid4())
    await event_log.emit(
        owner_id,
        node_id,
        "NodeCreated",
        NodeCreatedPayload(
            node_id=node_id,
            parent_id=parent_id,
            folder_id=folder_id,
            user_prompt=user_prompt,
            citations=citations or [],
        ),
    )
    if ai_response is not None:
        await event_log.emit(
            owner_id,
            node_id,
            "NodeCompleted",
            NodeCompletedPayload(node_id=node_id, ai_response=ai_response, summary=summary),
        )
    return node_id


async def add_chain(
    event_log: EventLog, n: int, *, owner_id: str = "local", parent_id: str | None = None
) -> list[str]:
    """A linear conversation of ``n`` turns. Turn i has prompt ``Prompt i`` and summary ``Summary i``."""
    ids: list[str] = []
    for i in range(1, n + 1):
        parent_id = await add_node(
            event_log,
            parent_id,
            owner_id=owner_id,
            user_prompt=f"Prompt {i}",
            ai_response=f"Answer {i}",
            summary=f"Summary {i}",
        )
        ids.append(parent_id)
    return ids


async def add_folder(
    event_log: EventLog,
    name: str = "Research",
    parent_id: str | None = None,
    *,
    owner_id: str = "local",
) -> str:
    folder_id = str(uuid4())
    await event_log.emit(
        owner_id,
        folder_id,
        "FolderCreated",
        FolderCreatedPayload(folder_id=folder_id, name=name, parent_id=parent_id),
    )
    return folder_id


# -- API-level helpers --


async def create_node_json(client: AsyncClient, user_prompt: str = "Hello", **body: Any) -> dict:
    """Create a node with stream=false and return the finished node JSON."""
    resp = await client.post(
        "/api/nodes", json={"user_prompt": user_prompt, "stream": False, **body}
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_folder(client: AsyncClient, name: str = "Research", **body: Any) -> dict:
    resp = await client.post("/api/folders", json={"name": name, **body})
    assert resp.status_code == 201, resp.text
    return resp.json()


def parse_sse(text: str) -> list[tuple[str, dict]]:
    """Split an SSE body into (event, data) pairs."""
    events: list[tuple[str, dict]] = []
    for block in text.strip().split("\n\n"):
        event_type = ""
        data: dict = {}
        for line in block.splitlines():
            if line.startswith("event: "):
                event_type = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        if event_type:
            events.append((event_type, data))
    return events


def delete_during_read(
    monkeypatch,
    forest: ForestStore,
    mutations: MutationEngine,
    target_id: str,
    when: Callable[[str, int], bool],
) -> list[asyncio.Task]:
    """Start a subtree delete of ``target_id`` from inside a ``forest.get_node`` call.

    ``when(node_id, n)`` picks the read (``n`` counts reads of that id from 1).
    The read then waits briefly for the delete before returning, so a read
    made outside the write transaction sees the delete. Returns the (at most
    one) delete task.
    """
    original = forest.get_node
    counts: dict[str, int] = {}
    started: list[asyncio.Task] = []

    async def get_node(owner_id: str, node_id: str) -> dict | None:
        counts[node_id] = counts.get(node_id, 0) + 1
        if not started and when(node_id, counts[node_id]):
            task = asyncio.create_task(mutations.delete_node(owner_id, target_id, "subtree"))
            started.append(task)
            await asyncio.wait({task}, timeout=0.2)
        return await original(owner_id, node_id)

    monkeypatch.setattr(forest, "get_node", get_node)
    return started
