"""Owner scoping for HTTP requests.

The owner is an opaque id supplied by the caller; nothing here
authenticates it.
"""

from fastapi import Header

DEFAULT_OWNER_ID = "local"


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Owner id from the ``X-Owner-Id`` header, ``local`` when absent or blank."""
    if x_owner_id is None or not x_owner_id.strip():
        return DEFAULT_OWNER_ID
    return x_owner_id.strip()
