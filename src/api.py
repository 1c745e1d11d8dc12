"""
HTTP API - REST endpoints for connector records and the validating webhook.

Records are admitted through the same Validator the webhook uses, so a
record missing its host or ``connector.class`` never reaches the store.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import asyncpg
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from admission import AdmissionError, AdmissionHandler, uid_of
from errors import ValidationError
from validation import Validator

logger = logging.getLogger(__name__)

# Kubernetes-style name pattern: lowercase alphanumeric, hyphens, max 63 chars
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
MAX_NAME_LENGTH = 63


def validate_name_format(value: str, field_name: str) -> str:
    """Validate that a name follows Kubernetes naming conventions."""
    if not value:
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"{field_name} cannot exceed {MAX_NAME_LENGTH} characters")
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must consist of lowercase alphanumeric characters or '-', "
            f"must start and end with an alphanumeric character"
        )
    return value


class ConnectorSpec(BaseModel):
    """Desired state of a connector."""

    host: str = Field(
        ..., description="Kafka Connect base URL", examples=["http://dbz:8083"]
    )
    config: Dict[str, str] = Field(
        ..., description="Connector configuration, including name and connector.class"
    )


class ConnectorCreate(BaseModel):
    """Request model for creating a connector record."""

    name: str = Field(..., description="Record name", examples=["inventory"])
    spec: ConnectorSpec

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_name_format(v, "name")


class ConnectorUpdate(BaseModel):
    """Request model for replacing a connector record's spec."""

    spec: ConnectorSpec


class ConditionResponse(BaseModel):
    type: str
    status: str
    reason: str = ""
    message: str = ""
    lastTransitionTime: Optional[str] = None


class ConnectorStatusResponse(BaseModel):
    phase: str = "UNKNOWN"
    conditions: List[ConditionResponse] = []


class ConnectorResponse(BaseModel):
    """Response model for a connector record."""

    id: int
    namespace: str
    name: str
    spec: ConnectorSpec
    generation: int
    observed_generation: int
    finalizers: List[str] = []
    deletion_timestamp: Optional[datetime] = None
    status: ConnectorStatusResponse
    last_error: Optional[str] = None
    last_reconcile_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ConnectorResponse":
        return cls(
            id=row["id"],
            namespace=row["namespace"],
            name=row["name"],
            spec=ConnectorSpec(host=row["host"], config=row.get("config") or {}),
            generation=row.get("generation", 1),
            observed_generation=row.get("observed_generation", 0),
            finalizers=row.get("finalizers") or [],
            deletion_timestamp=row.get("deleted_at"),
            status=ConnectorStatusResponse(
                phase=row.get("phase") or "UNKNOWN",
                conditions=[
                    ConditionResponse(**c) for c in row.get("conditions") or []
                ],
            ),
            last_error=row.get("last_error"),
            last_reconcile_time=row.get("last_reconcile_time"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _validation_exception(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "message": e.message,
            "errors": [{"field": err.path, "message": err.message} for err in e.errors],
        },
    )


class HTTPAPI:
    """
    REST API and webhook server for the operator.

    Routes are registered at construction so the app can be served by
    uvicorn or driven directly in tests.
    """

    def __init__(
        self,
        db_manager: Any,
        validator: Validator,
        host: str = "0.0.0.0",
        port: int = 8443,
        log_level: str = "INFO",
        ssl_certfile: Optional[str] = None,
        ssl_keyfile: Optional[str] = None,
    ):
        self._db = db_manager
        self._validator = validator
        self._admission = AdmissionHandler(validator)
        self.host = host
        self.port = port
        self.log_level = log_level
        self.ssl_certfile = ssl_certfile
        self.ssl_keyfile = ssl_keyfile
        self.server: Optional[uvicorn.Server] = None

        self.app = FastAPI(
            title="Debezium Operator API",
            description="Declarative management of Debezium connectors on Kafka Connect",
            version="0.1.0",
        )
        self._setup_routes()

    def _setup_routes(self) -> None:
        """
        Register the API routes.

        - Probes: GET /healthz, GET /readyz
        - Connectors: /api/v1/connectors, /api/v1/namespaces/{ns}/connectors/...
        - Validating webhook: POST /validate-dbc
        """
        app = self.app

        @app.get("/healthz")
        async def healthz():
            return {"status": "ok"}

        @app.get("/readyz")
        async def readyz():
            try:
                ready = await self._db.ping()
            except Exception as e:
                logger.warning(f"Readiness check failed: {e}")
                ready = False
            if not ready:
                raise HTTPException(status_code=503, detail="Database not available")
            return {"status": "ready"}

        @app.post(
            "/api/v1/namespaces/{namespace}/connectors",
            response_model=ConnectorResponse,
            status_code=201,
        )
        async def create_connector(namespace: str, body: ConnectorCreate):
            """Create a connector record."""
            self._check_namespace(namespace)
            spec = body.spec.model_dump()
            try:
                await self._validator.validate(spec)
            except ValidationError as e:
                raise _validation_exception(e)

            try:
                await self._db.create_connector(
                    namespace, body.name, spec["host"], spec["config"]
                )
            except asyncpg.UniqueViolationError:
                raise HTTPException(
                    status_code=409,
                    detail=f"Connector {namespace}/{body.name} already exists",
                )
            except Exception as e:
                logger.error(f"Error creating connector record: {e}")
                raise HTTPException(status_code=500, detail=str(e))

            created = await self._db.get_connector_by_key(namespace, body.name)
            return ConnectorResponse.from_row(created)

        @app.get("/api/v1/connectors", response_model=List[ConnectorResponse])
        async def list_connectors(namespace: Optional[str] = None, limit: int = 100):
            """List connector records."""
            try:
                rows = await self._db.list_connectors(namespace=namespace, limit=limit)
            except Exception as e:
                logger.error(f"Error listing connector records: {e}")
                raise HTTPException(status_code=500, detail=str(e))
            return [ConnectorResponse.from_row(row) for row in rows]

        @app.get(
            "/api/v1/namespaces/{namespace}/connectors/{name}",
            response_model=ConnectorResponse,
        )
        async def get_connector(namespace: str, name: str):
            """Get a connector record with its status."""
            row = await self._get_or_404(namespace, name)
            return ConnectorResponse.from_row(row)

        @app.put(
            "/api/v1/namespaces/{namespace}/connectors/{name}",
            response_model=ConnectorResponse,
        )
        async def update_connector(namespace: str, name: str, body: ConnectorUpdate):
            """Replace the spec of a connector record."""
            row = await self._get_or_404(namespace, name)
            if row.get("deleted_at") is not None:
                raise HTTPException(
                    status_code=409,
                    detail=f"Connector {namespace}/{name} is being deleted",
                )

            spec = body.spec.model_dump()
            try:
                await self._validator.validate(spec)
            except ValidationError as e:
                raise _validation_exception(e)

            generation = await self._db.update_connector_spec(
                namespace, name, spec["host"], spec["config"]
            )
            if generation is None:
                raise HTTPException(status_code=404, detail="Connector not found")

            updated = await self._get_or_404(namespace, name)
            return ConnectorResponse.from_row(updated)

        @app.delete(
            "/api/v1/namespaces/{namespace}/connectors/{name}", status_code=202
        )
        async def delete_connector(namespace: str, name: str):
            """Request deletion; the record goes once its finalizer is released."""
            await self._get_or_404(namespace, name)
            await self._db.mark_connector_deleted(namespace, name)
            return {
                "message": "Connector marked for deletion",
                "namespace": namespace,
                "name": name,
            }

        @app.post(
            "/api/v1/namespaces/{namespace}/connectors/{name}/reconcile",
            status_code=202,
        )
        async def trigger_reconciliation(namespace: str, name: str):
            """Manually trigger reconciliation for a record."""
            if not await self._db.mark_for_reconciliation(namespace, name):
                raise HTTPException(status_code=404, detail="Connector not found")
            return {
                "message": "Reconciliation triggered",
                "namespace": namespace,
                "name": name,
            }

        @app.post("/validate-dbc")
        async def validate_webhook(request: Request):
            """Validating admission webhook."""
            review = await request.json()
            try:
                return await self._admission.handle(review)
            except AdmissionError as e:
                logger.warning(f"Malformed AdmissionReview (uid={uid_of(review)}): {e}")
                return JSONResponse(status_code=400, content={"detail": e.message})

    @staticmethod
    def _check_namespace(namespace: str) -> None:
        try:
            validate_name_format(namespace, "namespace")
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

    async def _get_or_404(self, namespace: str, name: str) -> Dict[str, Any]:
        row = await self._db.get_connector_by_key(namespace, name)
        if not row:
            raise HTTPException(status_code=404, detail="Connector not found")
        return row

    async def start(self) -> None:
        """Serve the API until stop() is called."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level.lower(),
            ssl_certfile=self.ssl_certfile,
            ssl_keyfile=self.ssl_keyfile,
        )
        self.server = uvicorn.Server(config)

        scheme = "https" if self.ssl_certfile else "http"
        logger.info(f"Starting HTTP API on {scheme}://{self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        logger.info("Stopping HTTP API")
        if self.server:
            self.server.should_exit = True

