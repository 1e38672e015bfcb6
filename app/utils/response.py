from typing import Any, Literal

Status = Literal["success", "error"]


def envelope(status: Status, data: Any = None, message: str | None = None) -> dict:
    return {"status": status, "data": data, "message": message}


def success_response(data: Any = None, message: str | None = None) -> dict:
    return envelope("success", data, message)


def error_response(message: str, data: Any = None) -> dict:
    return envelope("error", data, message)


def validation_error_response(errors: dict[str, str], message: str = "The given data was invalid.") -> dict:
    """Field-keyed errors, e.g. ``{"category": "...", "images.1": "..."}``."""
    return error_response(message, data={"errors": errors})
