"""
Admission Webhook - validating webhook for connector records.

Handles AdmissionReview requests the way a Kubernetes validating
webhook does: CREATE and UPDATE run the configured Validator, every
other operation is admitted unchanged.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import ValidationError
from validation import Validator

logger = logging.getLogger(__name__)

VALIDATED_OPERATIONS = ("CREATE", "UPDATE")


class AdmissionError(Exception):
    """Raised when an AdmissionReview body is malformed."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass
class AdmissionRequest:
    """The ``request`` part of an AdmissionReview."""

    uid: str
    operation: str
    name: str = ""
    namespace: str = ""
    spec: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_review(cls, review: Dict[str, Any]) -> "AdmissionRequest":
        """
        Parse an AdmissionReview body.

        Raises:
            AdmissionError: If ``request.uid`` or ``request.operation`` is missing.
        """
        request = review.get("request")
        if not isinstance(request, dict):
            raise AdmissionError("AdmissionReview has no request")

        uid = request.get("uid")
        operation = request.get("operation")
        if not uid or not operation:
            raise AdmissionError("AdmissionReview request must have uid and operation")

        obj = request.get("object") or {}
        metadata = obj.get("metadata") or {}
        return cls(
            uid=uid,
            operation=str(operation).upper(),
            name=metadata.get("name") or request.get("name", ""),
            namespace=metadata.get("namespace") or request.get("namespace", ""),
            spec=obj.get("spec") or {},
        )


@dataclass
class AdmissionResponse:
    """Outcome of an admission decision."""

    uid: str
    allowed: bool
    message: str = ""
    causes: List[Dict[str, str]] = field(default_factory=list)

    def to_review(self) -> Dict[str, Any]:
        """Wrap the response in an AdmissionReview body."""
        response: Dict[str, Any] = {"uid": self.uid, "allowed": self.allowed}
        if not self.allowed:
            response["status"] = {
                "code": 422,
                "reason": "Invalid",
                "message": self.message,
                "details": {"causes": self.causes},
            }
        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "response": response,
        }


class AdmissionHandler:
    """Decides AdmissionReview requests with a Validator."""

    def __init__(self, validator: Validator):
        self._validator = validator

    async def review(self, request: AdmissionRequest) -> AdmissionResponse:
        """Admit or deny a request."""
        if request.operation not in VALIDATED_OPERATIONS:
            return AdmissionResponse(uid=request.uid, allowed=True)

        try:
            await self._validator.validate(request.spec)
        except ValidationError as e:
            logger.info(
                f"Denied {request.operation} of {request.namespace}/{request.name}: {e}"
            )
            return AdmissionResponse(
                uid=request.uid,
                allowed=False,
                message=(
                    f'DebeziumConnector "{request.name}" is invalid: {e.message}'
                ),
                causes=[
                    {"field": err.path, "message": err.message} for err in e.errors
                ],
            )

        return AdmissionResponse(uid=request.uid, allowed=True)

    async def handle(self, review: Dict[str, Any]) -> Dict[str, Any]:
        """Handle a raw AdmissionReview body and return the response body."""
        request = AdmissionRequest.from_review(review)
        response = await self.review(request)
        return response.to_review()


def uid_of(review: Dict[str, Any]) -> Optional[str]:
    """Best-effort uid of a possibly malformed AdmissionReview."""
    request = review.get("request") if isinstance(review, dict) else None
    if isinstance(request, dict):
        return request.get("uid")
    return None
