"""JSON schemas for the metadata bags carried by transactions and accruals.

Metadata is validated at the service boundary; unknown keys are rejected.
"""

from typing import Any

from jsonschema import Draft202012Validator

from transaction_service.domain.exceptions import ValidationError


_SHORT_TEXT: dict[str, Any] = {"type": "string", "maxLength": 255}

TRANSACTION_METADATA_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "channel": {"type": "string", "enum": ["web", "mobile", "api", "branch", "batch"]},
        "counterparty_account_id": {"type": "string", "minLength": 1, "maxLength": 64},
        "client_reference": _SHORT_TEXT,
        "batch_id": {"type": "string", "minLength": 1, "maxLength": 64},
        "note": {"type": "string", "maxLength": 1000},
    },
    "additionalProperties": False,
}

ACCRUAL_METADATA_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "account_category": _SHORT_TEXT,
        "rate_id": _SHORT_TEXT,
        "initiated_by": _SHORT_TEXT,
    },
    "additionalProperties": False,
}

_TRANSACTION_VALIDATOR = Draft202012Validator(TRANSACTION_METADATA_SCHEMA)
_ACCRUAL_VALIDATOR = Draft202012Validator(ACCRUAL_METADATA_SCHEMA)


def _validate(validator: Draft202012Validator, metadata: dict[str, Any]) -> dict[str, Any]:
    error = next(iter(sorted(validator.iter_errors(metadata), key=lambda e: list(e.path))), None)
    if error is not None:
        location = ".".join(str(part) for part in error.path)
        raise ValidationError(f"metadata.{location}" if location else "metadata", error.message)
    return metadata


def validate_transaction_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    return _validate(_TRANSACTION_VALIDATOR, dict(metadata or {}))


def validate_accrual_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    return _validate(_ACCRUAL_VALIDATOR, dict(metadata or {}))
