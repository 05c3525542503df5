"""Orderflow FastAPI application.

Web server that processes commands synchronously via HTTP. Every request
under a routed prefix is wrapped in the orderflow domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from orderflow.domain import orderflow  # noqa: E402

orderflow.init()

_ROUTED_PREFIXES = ("/orders", "/returns", "/payments", "/shipping")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Orderflow API",
    description="Order fulfillment — item lifecycle, returns, payments and shipping",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the orderflow domain context for routed requests."""
    if request.url.path.startswith(_ROUTED_PREFIXES):
        with orderflow.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs etc. run without a domain context
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from orderflow.api.errors import register_error_handlers  # noqa: E402
from orderflow.api.routes import (  # noqa: E402
    order_router,
    payment_router,
    return_router,
    shipping_router,
)

app.include_router(order_router)
app.include_router(return_router)
app.include_router(payment_router)
app.include_router(shipping_router)

register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": orderflow.name}})
