"""Response helpers for the standard API envelope.

Success: `{"success": true, "message": ..., "data": ...}`
Failure: `{"success": false, "message": ..., "error": ...}`
"""

from typing import Any, Dict, Optional


def success_response(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    """Wrap data in the success envelope."""
    return {"success": True, "message": message, "data": data}


def error_response(message: str, error: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"success": False, "message": message, "error": error}
    if details:
        payload["details"] = details
    return payload


def paginated(items: list, page: int, limit: int, total: int) -> Dict[str, Any]:
    """Items plus the pagination block clients use for page math."""
    pages = (total + limit - 1) // limit if limit else 0
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        },
    }
