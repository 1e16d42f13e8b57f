"""
Advisory Request Workflow
Blueprint registry.
"""

from flask import request

from advisory.core.exceptions import ValidationError


def json_body() -> dict:
    """Return the JSON object body of the current request (``{}`` when absent)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("invalid_body", "Request body must be a JSON object.")
    return data


def require_fields(data: dict, *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(
            "fields_required",
            f"Missing required field(s): {', '.join(missing)}",
            details={"missing": missing},
        )


def flag(data: dict, name: str) -> bool:
    """Read a boolean field; JSON booleans as-is, "true" / "1" / "yes" strings as True."""
    value = data.get(name)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, str)):
        return str(value).strip().lower() in ("true", "1", "yes")
    raise ValidationError("invalid_flag", f"{name} must be a boolean.", details={"field": name})
