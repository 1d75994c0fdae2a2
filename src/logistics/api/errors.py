"""HTTP mapping for the logistics error taxonomy.

Registered after protean's own handlers; Starlette picks the handler of the
most specific class in the exception's MRO, so these take precedence over
the generic ValidationError → 400 and InvalidOperationError → 422 mapping.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError
from protean.integrations.fastapi import register_exception_handlers

from logistics.errors import (
    ConcurrentModification,
    InvalidTransition,
    OutOfStock,
    PartialReservationFailure,
    PricingPolicyViolation,
    QuoteExpired,
    ReservationExpired,
    ShippingUnavailable,
    StaffNotAuthorized,
)

logger = structlog.get_logger(__name__)


def _messages(exc: Exception):
    return getattr(exc, "messages", None) or {"_entity": [str(exc)]}


async def _out_of_stock(request: Request, exc: OutOfStock) -> JSONResponse:
    missing = exc.missing_items if isinstance(exc, PartialReservationFailure) else [exc.as_missing_item()]
    return JSONResponse(
        status_code=409,
        content={
            "error": _messages(exc),
            "missing_items": missing,
            "alternatives": exc.alternatives,
        },
    )


async def _invalid_transition(request: Request, exc: InvalidTransition) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": _messages(exc), "from": exc.from_state, "attempted": exc.attempted},
    )


async def _concurrent_modification(request: Request, exc: ConcurrentModification) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": _messages(exc), "expected_revision": exc.expected, "actual_revision": exc.actual},
    )


async def _gone(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=410, content={"error": _messages(exc)})


async def _forbidden(request: Request, exc: StaffNotAuthorized) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": _messages(exc)})


async def _shipping_unavailable(request: Request, exc: ShippingUnavailable) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": _messages(exc)})


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": _messages(exc)})


async def _pricing_violation(request: Request, exc: PricingPolicyViolation) -> JSONResponse:
    logger.error("Pricing policy violation", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": {"_entity": ["Price could not be computed"]}})


def register_error_handlers(app: FastAPI) -> None:
    """Install protean's handlers plus the logistics-specific status codes."""
    register_exception_handlers(app)
    app.add_exception_handler(OutOfStock, _out_of_stock)
    app.add_exception_handler(InvalidTransition, _invalid_transition)
    app.add_exception_handler(ConcurrentModification, _concurrent_modification)
    app.add_exception_handler(ReservationExpired, _gone)
    app.add_exception_handler(QuoteExpired, _gone)
    app.add_exception_handler(StaffNotAuthorized, _forbidden)
    app.add_exception_handler(ShippingUnavailable, _shipping_unavailable)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(PricingPolicyViolation, _pricing_violation)
