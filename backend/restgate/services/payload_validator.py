"""
RestGate Backend — Payload Validator
====================================

What:  Validates a raw request body against the schema for (resource, operation).
Why:   Request bodies are untrusted; only validated, coerced data reaches the store.
How:   Looks the schema up in the table built by `build_schema_table()`,
       decodes the JSON body and runs pydantic validation.

Outcomes (never both a value and an error):
    success            → ValidationOutcome(value={...})
    undecodable body   → ValidationOutcome(error="InvalidBody", message="Invalid JSON body")
    schema mismatch    → ValidationOutcome(error="ValidationFailed", message="title: Field required")

A missing schema is a configuration fault, not a client error: `verify()`
runs at startup and `validate()` raises ConfigurationError if one still slips
through.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from restgate.exceptions import ConfigurationError
from restgate.schemas.resources import OperationKind, SchemaTable
from restgate.services.route_registry import ResourceKey

logger = logging.getLogger(__name__)

INVALID_BODY = "InvalidBody"
VALIDATION_FAILED = "ValidationFailed"


@dataclass(frozen=True)
class ValidationOutcome:
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Dict[str, Any]) -> "ValidationOutcome":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, message: str) -> "ValidationOutcome":
        return cls(error=error, message=message)


def format_validation_errors(exc: PydanticValidationError) -> str:
    """Flatten pydantic errors into `field: message; field: message`."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


class PayloadValidator:
    def __init__(self, schemas: SchemaTable):
        self._schemas = dict(schemas)

    def verify(self, keys: Iterable[ResourceKey]) -> None:
        """
        Fail startup if any declared resource lacks one of its schemas.

        Raises:
            ConfigurationError: listing every missing (resource, operation) pair
        """
        missing = [
            f"{key.value}/{kind.value}"
            for key in keys
            for kind in OperationKind
            if (key, kind) not in self._schemas
        ]
        if missing:
            raise ConfigurationError(
                "Missing payload schemas: " + ", ".join(missing),
                context={"missing": missing},
            )

    def validate(
        self, model_key: ResourceKey, kind: OperationKind, raw_payload: bytes
    ) -> ValidationOutcome:
        schema = self._schemas.get((model_key, kind))
        if schema is None:
            raise ConfigurationError(
                f"No schema registered for {model_key.value}/{kind.value}"
            )

        try:
            body = json.loads(raw_payload) if raw_payload else None
        except (json.JSONDecodeError, UnicodeDecodeError):
            return ValidationOutcome.failure(INVALID_BODY, "Invalid JSON body")
        if body is None:
            return ValidationOutcome.failure(INVALID_BODY, "Invalid JSON body")

        try:
            parsed = schema.model_validate(body)
        except PydanticValidationError as e:
            message = format_validation_errors(e)
            logger.debug("%s %s payload rejected: %s", model_key.value, kind.value, message)
            return ValidationOutcome.failure(VALIDATION_FAILED, message)

        # PATCH must only touch the fields the client actually sent
        exclude_unset = kind is OperationKind.UPDATE_PARTIAL
        return ValidationOutcome.success(parsed.model_dump(exclude_unset=exclude_unset))
