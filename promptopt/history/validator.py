"""Required-field checks for prompt records."""

from __future__ import annotations

from typing import Any, List, Mapping, Union

from .models import RECORD_TYPES, PromptRecord

# field -> human readable name
REQUIRED_FIELDS = {
    "id": "record id",
    "original_prompt": "original prompt",
    "optimized_prompt": "optimized prompt",
    "type": "record type",
    "chain_id": "chain id",
    "version": "version",
    "timestamp": "timestamp",
    "model_key": "model key",
    "template_id": "template id",
}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_record(candidate: Union[PromptRecord, Mapping[str, Any]]) -> List[str]:
    """
    Check a candidate record for missing or invalid fields.

    Args:
        candidate: A PromptRecord or a plain mapping with the same keys.

    Returns:
        One "<field>: <problem>" message per issue. Empty when valid.
    """
    if isinstance(candidate, PromptRecord):
        data = candidate.model_dump()
    elif isinstance(candidate, Mapping):
        data = dict(candidate)
    else:
        return [f"record: expected a mapping, got {type(candidate).__name__}"]

    errors: List[str] = []
    for field, label in REQUIRED_FIELDS.items():
        if _is_missing(data.get(field)):
            errors.append(f"{field}: missing {label}")

    record_type = data.get("type")
    if not _is_missing(record_type) and record_type not in RECORD_TYPES:
        errors.append(f"type: must be one of {', '.join(RECORD_TYPES)}, got {record_type!r}")

    version = data.get("version")
    if version is not None:
        if not isinstance(version, int) or isinstance(version, bool):
            errors.append(f"version: must be an integer, got {version!r}")
        elif version < 1:
            errors.append(f"version: must be >= 1, got {version}")

    timestamp = data.get("timestamp")
    if timestamp is not None and (not _is_number(timestamp) or timestamp < 0):
        errors.append(f"timestamp: must be a non-negative epoch milliseconds value, got {timestamp!r}")

    if record_type == "optimize" and data.get("previous_id"):
        errors.append("previous_id: an optimize record starts a chain and cannot have a previous record")

    return errors


__all__ = ["REQUIRED_FIELDS", "validate_record"]
