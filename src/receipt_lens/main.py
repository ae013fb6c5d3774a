from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from receipt_lens.api.router import router as api_router
from receipt_lens.core.config import settings
from receipt_lens.core.logging import RequestContextMiddleware


def create_app() -> FastAPI:
    app = FastAPI(title="Receipt Lens", version="0.1.0")
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_allow_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.include_router(api_router)
    return app


app = create_app()
