# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi import status as Status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from src.common.exceptions import VideoPipelineError
from src.config.config_service import config_service
from src.config.logging_config import setup_logging
from src.videos.video_controller import router as video_router

logger = logging.getLogger(__name__)

CORS_ALLOWED_METHODS = ["POST", "OPTIONS"]
CORS_ALLOWED_HEADERS = ["Content-Type", "Authorization", "X-Auth-Token"]
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": ", ".join(CORS_ALLOWED_HEADERS),
    "Access-Control-Allow-Methods": ", ".join(CORS_ALLOWED_METHODS),
}


class PreflightMiddleware:
    """Answers every OPTIONS request with 204 and the CORS headers."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = Response(
                status_code=Status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS
            )
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    # Errors raised by our own validators carry the original ValueError
    ctx_error = (first.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if location:
        return f"{location}: {first.get('msg', 'invalid value')}"
    return first.get("msg", "Invalid request body")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config_service)
    logger.info(f"Video service on :{config_service.PORT}")
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Video Assembly Service", version="1.0.0", lifespan=lifespan)

    # Pure ASGI middleware only: BaseHTTPMiddleware hides client disconnects
    # from request.is_disconnected().
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_ALLOWED_METHODS,
        allow_headers=CORS_ALLOWED_HEADERS,
    )
    app.add_middleware(PreflightMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning(f"Rejected {request.url.path}: {message}")
        return JSONResponse(
            status_code=Status.HTTP_400_BAD_REQUEST, content={"error": message}
        )

    @app.exception_handler(VideoPipelineError)
    async def pipeline_exception_handler(request: Request, exc: VideoPipelineError):
        if exc.status_code == Status.HTTP_401_UNAUTHORIZED:
            return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
        logger.error(f"{request.url.path} failed: {exc.message}", exc_info=exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "details": exc.details or ""},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"{request.url.path} failed unexpectedly: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=Status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or type(exc).__name__, "details": ""},
            headers=CORS_HEADERS,
        )

    @app.get("/", response_class=PlainTextResponse)
    async def health():
        return "OK"

    app.include_router(video_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=config_service.HOST,
        port=config_service.PORT,
        log_config=None,
    )
