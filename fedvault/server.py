"""
HTTP surface for the aggregation service.

Usage::

    from fedvault.server import run_server
    run_server(port=8090)

    # Then, as a client whose identity was verified upstream:
    # curl -X POST localhost:8090/v1/clients -H 'X-Client-Identity: alice'
    # curl -X POST localhost:8090/v1/updates -H 'X-Client-Identity: alice' \\
    #   --data-binary @update.bin
    # curl -X POST localhost:8090/v1/aggregations/plain

Caller identity is taken verbatim from the ``X-Client-Identity`` header;
authenticating it is the job of whatever sits in front of this app.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .config import Settings
from .errors import (
    AggregationError,
    DeserializationFailed,
    DuplicateRegistration,
    InvalidKeyMaterial,
    InvalidVector,
    KeyServiceUnavailable,
    NotRegistered,
    UnknownClientId,
)
from .service import FederatedAggregator

logger = logging.getLogger(__name__)

IDENTITY_HEADER = "X-Client-Identity"

_STATUS_BY_ERROR: dict[type, int] = {
    DuplicateRegistration: 409,
    NotRegistered: 403,
    UnknownClientId: 404,
    KeyServiceUnavailable: 502,
    InvalidKeyMaterial: 502,
    DeserializationFailed: 422,
    InvalidVector: 422,
}


def status_for_error(exc: AggregationError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 500


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class FixedPointVectorBody(BaseModel):
    values: list[int]


class ModeBody(BaseModel):
    mode: str


class DeriveKeyBody(BaseModel):
    derivation_path: str  # hex-encoded bytes


# ---------------------------------------------------------------------------
# FastAPI app factory
# ---------------------------------------------------------------------------


def create_app(
    aggregator: Optional[FederatedAggregator] = None,
    *,
    settings: Optional[Settings] = None,
) -> Any:
    """Create a FastAPI app exposing every aggregator operation.

    Parameters
    ----------
    aggregator:
        Instance to serve.  When ``None`` one is built from *settings*
        (or from the environment when *settings* is also ``None``).
    """
    service = aggregator or FederatedAggregator.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: Any) -> Any:
        logger.info(
            "Aggregator ready (cycle=%d, mode=%s)", service.get_cycle(), service.get_mode()
        )
        yield
        await service.aclose()

    app = FastAPI(title="fedvault", version="1.0.0", lifespan=lifespan)
    app.state.aggregator = service

    @app.exception_handler(AggregationError)
    async def aggregation_error_handler(request: Request, exc: AggregationError) -> Any:
        return JSONResponse(
            status_code=status_for_error(exc),
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    def _identity(value: Optional[str]) -> str:
        if not value:
            raise HTTPException(status_code=401, detail=f"Missing {IDENTITY_HEADER} header")
        return value

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "cycle": service.get_cycle(),
            "mode": service.get_mode(),
        }

    # --- registry -------------------------------------------------------

    @app.post("/v1/clients")
    async def register_client(
        x_client_identity: Optional[str] = Header(default=None),
    ) -> dict[str, Any]:
        return {"client_id": service.register(_identity(x_client_identity))}

    @app.get("/v1/clients/me")
    async def client_id(
        x_client_identity: Optional[str] = Header(default=None),
    ) -> dict[str, Any]:
        return {"client_id": service.get_client_id(_identity(x_client_identity))}

    # --- cycles ---------------------------------------------------------

    @app.get("/v1/cycles/current")
    async def current_cycle() -> dict[str, Any]:
        return {"cycle": service.get_cycle()}

    @app.post("/v1/cycles")
    async def advance_cycle() -> dict[str, Any]:
        return {"cycle": service.advance_cycle()}

    @app.get("/v1/cycles/{cycle}/participants")
    async def cycle_participants(cycle: int) -> dict[str, Any]:
        return {"cycle": cycle, "participants": service.get_participants(cycle)}

    # --- mode -----------------------------------------------------------

    @app.get("/v1/mode")
    async def get_mode() -> dict[str, Any]:
        return {"mode": service.get_mode()}

    @app.put("/v1/mode")
    async def set_mode(body: ModeBody) -> dict[str, Any]:
        return {"mode": service.set_mode(body.mode)}

    # --- plain pipeline -------------------------------------------------

    @app.post("/v1/updates", status_code=204)
    async def upload_update(
        request: Request,
        x_client_identity: Optional[str] = Header(default=None),
    ) -> Response:
        identity = _identity(x_client_identity)
        service.upload_update(identity, await request.body())
        return Response(status_code=204)

    @app.get("/v1/model")
    async def global_model() -> Response:
        return Response(content=service.get_global_model(), media_type="application/json")

    @app.post("/v1/aggregations/plain")
    async def run_aggregation() -> dict[str, Any]:
        result = await service.run_aggregation()
        return result.to_dict()

    # --- SMPC pipeline --------------------------------------------------

    @app.post("/v1/smpc/shares", status_code=204)
    async def upload_masked_share(
        body: FixedPointVectorBody,
        x_client_identity: Optional[str] = Header(default=None),
    ) -> Response:
        service.upload_masked_share_s(_identity(x_client_identity), body.values)
        return Response(status_code=204)

    @app.post("/v1/smpc/sums", status_code=204)
    async def upload_mask_sum(
        body: FixedPointVectorBody,
        x_client_identity: Optional[str] = Header(default=None),
    ) -> Response:
        service.upload_mask_sum_t(_identity(x_client_identity), body.values)
        return Response(status_code=204)

    @app.post("/v1/aggregations/smpc")
    async def run_smpc_aggregation() -> dict[str, Any]:
        return service.run_smpc_aggregation().to_dict()

    # --- keys -----------------------------------------------------------

    @app.post("/v1/keys/derive")
    async def derive_key(
        body: DeriveKeyBody,
        x_client_identity: Optional[str] = Header(default=None),
    ) -> dict[str, Any]:
        try:
            path = bytes.fromhex(body.derivation_path)
        except ValueError:
            raise HTTPException(status_code=422, detail="derivation_path must be hex") from None
        key = await service.derive_key_for_client(_identity(x_client_identity), path)
        return {"key": key}

    return app


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8090,
    settings: Optional[Settings] = None,
    log_level: str = "info",
) -> None:
    """Start the aggregation server (blocking)."""
    import uvicorn

    app = create_app(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
