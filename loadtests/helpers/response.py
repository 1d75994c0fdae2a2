"""Response error extraction for load test observability.

Turns logistics API error bodies into one-line messages for Locust failure
reports. Shapes handled:

- Pydantic validation (422): {"detail": [{"loc": [...], "msg": "..."}]}
- Domain errors: {"error": {"field": ["msg", ...]}}
- Stock conflicts (409) add "missing_items" and "alternatives"
- Workflow conflicts (409) add "from"/"attempted" or revision numbers
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def _flatten(error) -> str:
    if not isinstance(error, dict):
        return str(error)
    parts = []
    for key, value in error.items():
        text = "; ".join(str(v) for v in value) if isinstance(value, list) else str(value)
        parts.append(text if key == "_entity" else f"{key}: {text}")
    return " | ".join(parts)


def _conflict_suffix(body: dict) -> str:
    if body.get("missing_items"):
        missing = ", ".join(
            f"{m['product_id']} ({m['available']}/{m['requested']})" for m in body["missing_items"]
        )
        alternatives = ",".join(body.get("alternatives") or []) or "none"
        return f" [missing {missing}; alternatives {alternatives}]"
    if "attempted" in body:
        return f" [{body.get('from')} -/-> {body['attempted']}]"
    if "actual_revision" in body:
        return f" [revision {body.get('expected_revision')} vs {body['actual_revision']}]"
    return ""


def extract_error_detail(response: Response) -> str:
    """Compact, human-readable message for a failed API call."""
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if not isinstance(body, dict):
        return str(body)[:300]

    if isinstance(body.get("detail"), list):
        parts = []
        for err in body["detail"]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    if "error" in body:
        return _flatten(body["error"]) + _conflict_suffix(body)

    return str(body)[:300]
