"""Core data types for the challenger application."""

from typing import Any, Dict, Optional, TypedDict  # noqa: UP035


class _FirestoreDocumentBase(TypedDict):
    id: str
    createdAt: Any


class FirestoreDocument(_FirestoreDocumentBase, total=False):
    """Generic Firestore document structure."""

    path: str
    updatedAt: Any


class APIResponse(TypedDict):
    """Generic API response structure."""

    success: bool
    message: str
    data: Optional[Any]  # noqa: UP007


def api_response(message: str, data: Any = None, success: bool = True) -> Dict[str, Any]:  # noqa: UP006
    """Build the JSON envelope returned by every endpoint."""
    response: APIResponse = {"success": success, "message": message, "data": data}
    return dict(response)
