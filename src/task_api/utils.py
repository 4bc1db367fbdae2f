from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, list):
        return [_dump(item) for item in data]
    if isinstance(data, dict):
        return {key: _dump(value) for key, value in data.items()}
    return data


# PUBLIC_INTERFACE
def envelope(
    success: bool = True,
    message: Optional[str] = None,
    data: Any = None,
    errors: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Build the standard response body used by every endpoint.

    Args:
        success: Whether the operation succeeded.
        message: Short, stable, human-readable outcome.
        data: Payload; pydantic models are serialized with their camelCase aliases.
        errors: Field-level validation failures.

    Returns:
        Dict with key success, plus message, data and errors when provided.
    """
    body: Dict[str, Any] = {"success": success}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = _dump(data)
    if errors is not None:
        body["errors"] = errors
    return body
