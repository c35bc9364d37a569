"""FieldSign REST API — FastAPI surface for recipient field signing.

Recipients are addressed by their access token, which the enclosing
application issues and delivers. The API only inserts values into
fields and reads them back; documents are created elsewhere.

Handlers touching the database are plain ``def`` so FastAPI runs them
in its threadpool instead of on the event loop.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import get_settings
from .engine import SigningService
from .errors import FieldSignError, NotFoundError
from .models import FieldRecord
from .store import FieldStore

logger = logging.getLogger("fieldsign.api")

VERSION = "0.1.0"

app = FastAPI(
    title="FieldSign",
    description="Insert recipient values and signatures into document fields.",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_store() -> FieldStore:
    """Process-wide store built from settings."""
    return FieldStore.from_url(settings=get_settings())


def get_service(store: FieldStore = Depends(get_store)) -> SigningService:
    return SigningService(store, settings=get_settings())


@app.exception_handler(FieldSignError)
async def field_sign_error_handler(request: Request, exc: FieldSignError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class SignFieldRequest(BaseModel):
    """Request body for inserting a value into a field."""

    token: str
    value: str = ""
    is_base64: bool = False


# ---------------------------------------------------------------------------
# Field endpoints
# ---------------------------------------------------------------------------

@app.post("/api/fields/{field_id}/sign", response_model=FieldRecord)
def sign_field(
    field_id: int,
    req: SignFieldRequest,
    service: SigningService = Depends(get_service),
) -> FieldRecord:
    """Insert a value into a field and mark it signed.

    Date fields ignore ``value`` and get the current date stamp.
    Signature fields store ``value`` as an image when ``is_base64``
    is set, as a typed signature otherwise.
    """
    return service.sign_field(
        token=req.token,
        field_id=field_id,
        value=req.value,
        is_base64=req.is_base64,
    )


@app.get("/api/fields/{field_id}", response_model=FieldRecord)
def get_field(
    field_id: int,
    token: Optional[str] = Query(None, description="Recipient access token"),
    store: FieldStore = Depends(get_store),
) -> FieldRecord:
    """Get a field by ID, as seen by the recipient holding ``token``."""
    if not token:
        raise NotFoundError(f"Field {field_id} not found for the given token")
    return store.get_field_for_recipient(field_id, token)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health() -> dict:
    """Health check."""
    return {
        "status": "ok",
        "service": "fieldsign",
        "version": VERSION,
    }
