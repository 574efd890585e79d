import json
from typing import Any, Callable, Dict, List, NamedTuple, Optional


class ReportError(Exception):
    """The workload report could not be fetched or is missing required fields."""


class RecordError(Exception):
    """The provenance record could not be fetched or does not match the schema."""


class NilccApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ErrorDiagnostic(NamedTuple):
    message: str
    payload: Dict[str, Any]


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _from_message(data: Dict[str, Any]) -> Optional[str]:
    message = data.get("message")
    return message if isinstance(message, str) and message else None


def _from_nested_json_error(data: Dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if not isinstance(error, str) or not error.lstrip().startswith("{"):
        return None
    nested = _load_object(error)
    if nested is None:
        return None
    inner = nested.get("error")
    return inner if isinstance(inner, str) and inner else error


def _from_object_error(data: Dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if not isinstance(error, dict):
        return None
    inner = error.get("error")
    if isinstance(inner, str) and inner:
        return inner
    return json.dumps(error)


def _from_string_error(data: Dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    return error if isinstance(error, str) and error else None


def _from_errors_list(data: Dict[str, Any]) -> Optional[str]:
    # nilCC API shape: {"errors": [...], "ts": ...}
    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        return "; ".join(str(e) for e in errors)
    return None


# Tried in order; the first attempt returning a message wins.
_ATTEMPTS: List[Callable[[Dict[str, Any]], Optional[str]]] = [
    _from_message,
    _from_nested_json_error,
    _from_object_error,
    _from_string_error,
    _from_errors_list,
]


def parse_error_body(text: Optional[str], default: str = "") -> ErrorDiagnostic:
    """
    Extract a human-readable message from an upstream error body.

    Never raises: a body that is not a JSON object falls back to the raw
    text (or ``default`` when the body is empty) with an empty payload.
    """
    text = text or ""
    data = _load_object(text)
    if data is None:
        return ErrorDiagnostic(text.strip() or default, {})

    for attempt in _ATTEMPTS:
        message = attempt(data)
        if message:
            return ErrorDiagnostic(message, data)
    return ErrorDiagnostic(default or text.strip(), data)
