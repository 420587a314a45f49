# proof_engine/api/main.py
"""HTTP API - create deployments, read status and certificates."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from proof_engine.api.routes.certificates import html_router as certificate_pages_router
from proof_engine.api.routes.certificates import router as certificates_router
from proof_engine.api.routes.deployments import router as deployments_router
from proof_engine.container import PipelineContext, build_context
from proof_engine.core.errors import NotFoundError, ProofEngineError, ValidationError

logger = logging.getLogger(__name__)


def create_app(
    context: Optional[PipelineContext] = None,
    *,
    start_workers: bool = True,
) -> FastAPI:
    """
    Build the API around a pipeline context.

    With start_workers the context's executor runs inside this process for
    the app's lifetime; otherwise a separate run_worker process drains the
    queue.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.context is None:
            app.state.context = build_context()

        ctx: PipelineContext = app.state.context
        if start_workers:
            ctx.executor.start()

        yield

        if start_workers:
            ctx.shutdown()

    app = FastAPI(title="Proof Engine API", lifespan=lifespan)
    app.state.context = context

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={"detail": f"{field}: {message}" if field else message},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ProofEngineError)
    async def engine_error_handler(request: Request, exc: ProofEngineError):
        logger.error(f"Unhandled engine error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(deployments_router)
    app.include_router(certificates_router)
    app.include_router(certificate_pages_router)

    return app


def main():
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
