"""Error taxonomy shared by the forest, context, and generation layers.

Routers translate these into HTTP responses; every error carries a
human-readable reason via str(exc).
"""


class CanopyError(Exception):
    """Base class for all domain errors."""


class NotFoundError(CanopyError):
    """An id is missing or belongs to another owner."""


class NodeNotFoundError(NotFoundError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class ParentNotFoundError(NotFoundError):
    def __init__(self, parent_id: str) -> None:
        self.parent_id = parent_id
        super().__init__(f"Parent node not found: {parent_id}")


class FolderNotFoundError(NotFoundError):
    def __init__(self, folder_id: str) -> None:
        self.folder_id = folder_id
        super().__init__(f"Folder not found: {folder_id}")


class ValidationError(CanopyError):
    """A request is well-formed JSON but violates a domain rule."""


class ProviderNotFoundError(ValidationError):
    """No registered provider matches the requested name (or none are registered)."""


class UpstreamGenerationError(CanopyError):
    """The model collaborator failed or returned an error payload."""

    def __init__(self, message: str, node_id: str | None = None) -> None:
        self.node_id = node_id
        super().__init__(message)


class IntegrityFaultError(CanopyError):
    """The stored forest violates a structural invariant (cycle, orphan pointer)."""

    def __init__(self, message: str, node_id: str | None = None) -> None:
        self.node_id = node_id
        super().__init__(message)
