import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import logfire
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from linkdesk.api.health import router as health_router
from linkdesk.api.signaling import router as signaling_router
from linkdesk.api.utils import api_failure
from linkdesk.app_config import get_app_environ_config
from linkdesk.domain.signaling import SignalingService
from linkdesk.utils.app_errors import AppErrorCode
from linkdesk.utils.logging import init_logger

cfg = get_app_environ_config()


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.debug(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.debug(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    server.state.signaling = SignalingService(cfg)

    if cfg.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=cfg.LOGFIRE_TOKEN,
            service_name="linkdesk-signaling",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server)

        logger.info("Logfire instrument httpx")
        logfire.instrument_httpx()

    yield

    logger.info("Application shutdown...")

    server.state.signaling.close()


def create_app() -> FastAPI:
    server = FastAPI(
        version="1.0",
        title="LinkDesk Signaling",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    server.add_middleware(HTTPLoggingMiddleware)

    server.include_router(signaling_router)
    # Last: its catch-all path answers every GET not matched before it
    server.include_router(health_router)

    return server


app = create_app()


def build_granian_kwargs():
    # The session registry lives in this process, so exactly one worker
    kwargs = {
        "interface": "asgi",
        "address": cfg.API_HOST,
        "port": cfg.PORT,
        "workers": 1,
        "reload": cfg.DEBUG,
    }

    return kwargs


def run():
    granian_kwargs = build_granian_kwargs()
    logger.info(f"LinkDesk signaling server starting on {cfg.API_HOST}:{cfg.PORT}")
    Granian("linkdesk.main:app", **granian_kwargs).serve()


if __name__ == "__main__":
    run()
