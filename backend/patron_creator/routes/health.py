"""Health check endpoint for patron-creator.

Returns server status along with the ILS token state and the barcode
supply left in the configured prefix family.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health")
def health(request: Request):
    """Health check endpoint.

    Never calls the ILS; the token state is whatever is cached.  The barcode
    supply reads are blocking database calls, so the handler is sync.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        return {"status": "unconfigured", "token_state": None, "barcodes": None}

    # -- Barcode supply --
    prefix = services.allocator.prefix
    try:
        barcodes = {
            "prefix": prefix,
            "total": services.store.count(prefix),
            "unused": services.store.count_unused(prefix),
            "remaining": services.allocator.remaining_supply(prefix),
        }
    except SQLAlchemyError as exc:
        logger.warning("Failed to read barcode supply: %s", exc)
        barcodes = None

    return {
        "status": "ok" if barcodes is not None else "degraded",
        "token_state": services.gateway.token_state.value,
        "barcodes": barcodes,
    }
