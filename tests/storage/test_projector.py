"""Contract tests for the StateProjector and the EventLog that drives it."""

import pytest

from canopy.models import EventEnvelope, NodeCompletedPayload, NodeCreatedPayload
from tests.fixtures import (
    add_node,
    make_folder_created_envelope,
    make_node_created_envelope,
)


class TestProjectorCanary:
    async def test_projection_roundtrip_node(self, event_store, projector, forest):
        """Append NodeCreated, project, get_node returns the node."""
        event = make_node_created_envelope(user_prompt="Hello!")

        await event_store.append(event)
        await projector.project([event])

        node = await forest.get_node("local", event.subject_id)
        assert node is not None
        assert node["user_prompt"] == "Hello!"
        assert node["ai_response"] is None
        assert node["summary"] is None
        assert node["citations"] == []
        assert node["references"] == []

    async def test_projection_roundtrip_folder(self, event_store, projector, forest):
        event = make_folder_created_envelope(name="Physics")

        await event_store.append(event)
        await projector.project([event])

        folder = await forest.get_folder("local", event.subject_id)
        assert folder is not None
        assert folder["name"] == "Physics"


class TestProjectorHandlers:
    async def test_node_fields_match_payload(self, projector, forest):
        event = make_node_created_envelope(
            user_prompt="Quote this",
            citations=[{"text": "quoted", "source": "user"}],
            references=[{"id": "abc", "type": "chat"}],
            model_metadata={"model": "fake-model", "provider": "fake"},
        )
        await projector.project([event])

        node = await forest.get_node("local", event.subject_id)
        assert node["citations"] == [
            {"text": "quoted", "source_node_id": None, "source": "user"}
        ]
        assert node["references"] == [{"id": "abc", "type": "chat"}]
        assert node["model_metadata"] == {"model": "fake-model", "provider": "fake"}

    async def test_node_completed_for_missing_node_is_logged(self, event_log, forest, caplog):
        """Completion of a node deleted mid-stream matches no row and does not raise."""
        await event_log.emit(
            "local",
            "gone",
            "NodeCompleted",
            NodeCompletedPayload(node_id="gone", ai_response="late"),
        )
        assert await forest.get_node("local", "gone") is None
        assert "matched no row" in caplog.text

    async def test_unknown_event_type_skipped(self, projector, caplog):
        event = make_node_created_envelope()
        unknown = EventEnvelope(**{**event.model_dump(), "event_type": "Mystery"})
        await projector.project([unknown])
        assert "No projection" in caplog.text

    async def test_listeners_called_per_event(self, projector):
        seen: list[str] = []
        projector.on_projected(lambda e: seen.append(e.event_type))

        await projector.project([make_folder_created_envelope(), make_node_created_envelope()])
        assert seen == ["FolderCreated", "NodeCreated"]


class TestEventLog:
    async def test_emit_appends_and_projects(self, event_log, event_store, forest):
        node_id = await add_node(event_log, user_prompt="Hi", ai_response="Hello")

        node = await forest.get_node("local", node_id)
        assert node["ai_response"] == "Hello"
        events = await event_store.get_subject_events("local", node_id)
        assert [e.event_type for e in events] == ["NodeCreated", "NodeCompleted"]

    async def test_failed_projection_rolls_back_append(self, event_log, event_store, projector):
        """If projection raises, the event is not left in the log."""

        def explode(event):
            raise RuntimeError("listener failed")

        projector.on_projected(explode)
        with pytest.raises(RuntimeError):
            await event_log.emit(
                "local", "n1", "NodeCreated", NodeCreatedPayload(node_id="n1", user_prompt="x")
            )
        assert await event_store.get_events("local") == []
