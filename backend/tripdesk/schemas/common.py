from typing import Any


def success(message: str, /, **data: Any) -> dict:
    """Standard success envelope."""
    return {"success": True, "message": message, **data}
