"""
Spec validation - the admission gate for connector records.

A Validator is the single capability admission depends on. The shipped
ConnectorValidator checks the spec shape locally with JSON Schema and
then asks the Kafka Connect plugin to validate the candidate config.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from connect_client import ConnectorControlClient, iter_validation_errors
from errors import FieldError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

CONNECTOR_SPEC_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["host", "config"],
    "properties": {
        "host": {"type": "string", "minLength": 1},
        "config": {
            "type": "object",
            "required": ["name", "connector.class"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "connector.class": {"type": "string", "minLength": 1},
            },
            "additionalProperties": {"type": "string"},
        },
    },
}

_REQUIRED_MESSAGES = {
    "spec.host": "host cannot be empty",
    "spec.config.connector.class": 'config must include key "connector.class"',
    "spec.config.name": 'config must include key "name"',
}


def schema_errors(
    spec: Dict[str, Any], schema: Dict[str, Any] = CONNECTOR_SPEC_SCHEMA
) -> List[FieldError]:
    """
    Validate a spec against a JSON Schema and return field-level errors.

    Paths are rooted at ``spec``; a missing required key is reported at
    the key's own path rather than its parent's.
    """
    validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
    errors: List[FieldError] = []

    for error in sorted(validator.iter_errors(spec), key=lambda e: list(e.absolute_path)):
        parent = ".".join(["spec", *(str(p) for p in error.absolute_path)])

        if error.validator == "required" and isinstance(error.instance, dict):
            for key in error.validator_value:
                if key not in error.instance:
                    path = f"{parent}.{key}"
                    errors.append(
                        FieldError(path, _REQUIRED_MESSAGES.get(path, "Required value"))
                    )
            continue

        if error.validator == "minLength" and parent in _REQUIRED_MESSAGES:
            errors.append(FieldError(parent, _REQUIRED_MESSAGES[parent], error.instance))
            continue

        errors.append(FieldError(parent, error.message, error.instance))

    return errors


class Validator(ABC):
    """Contract for the admission-time check of a connector spec."""

    @abstractmethod
    async def validate(self, spec: Dict[str, Any]) -> None:
        """
        Validate a desired spec.

        Raises:
            ValidationError: With one FieldError per problem found.
        """
        pass


class ConnectorValidator(Validator):
    """
    Local schema check followed by Kafka Connect's config validation.

    The upstream call is skipped when the local check fails, since it
    needs both the host and ``connector.class``.
    """

    def __init__(self, client: ConnectorControlClient):
        self.client = client

    async def validate(self, spec: Dict[str, Any]) -> None:
        errors = schema_errors(spec)
        if errors:
            raise ValidationError(errors)

        host = spec["host"]
        config = spec["config"]
        connector_class = config["connector.class"]

        try:
            result = await self.client.validate_config(host, connector_class, config)
        except UpstreamError as e:
            logger.warning(f"Config validation call to {host} failed: {e}")
            raise ValidationError(
                [
                    FieldError(
                        "spec.config",
                        f"error calling Kafka Connect validation endpoint: {e}",
                    )
                ]
            ) from e

        for key, message, value in iter_validation_errors(result):
            errors.append(
                FieldError(f"spec.config.{key}", message, config.get(key, value))
            )

        if errors:
            raise ValidationError(errors)
