import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings
from app.context import AppContext
from app.errors import MissingFieldsError
from app.routes import router

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Settings = None, gateway=None, session_factory=None) -> FastAPI:
    # Missing configuration raises ConfigError here, before anything is served
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    context = AppContext.build(settings, gateway=gateway, session_factory=session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context.startup()
        logger.info("M-Pesa payment service started (%s)", settings.environment)
        yield
        context.shutdown()

    app = FastAPI(title="M-Pesa STK Push Payment Service", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        logger.warning("Invalid request body on %s: %s", request.url.path, errors)
        # a body that is not a JSON object carries none of the required fields
        if errors and all(tuple(e.get("loc", ())) == ("body",) for e in errors):
            resmsg = MissingFieldsError.public_message
        else:
            resmsg = "Invalid request body"
        return JSONResponse(status_code=400, content={"rescode": "1", "resmsg": resmsg})

    app.include_router(router)
    if settings.api_prefix:
        app.include_router(router, prefix=settings.api_prefix)

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app.main:create_app", factory=True, host="0.0.0.0", port=port)
