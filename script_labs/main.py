import asyncio
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from script_labs import __version__
from script_labs.config import settings
from script_labs.core.errors import (
    AppError, AuthenticationError, app_error_handler, authentication_error_handler,
    http_exception_handler, install_loop_error_hook, install_process_error_hooks,
    request_validation_error_handler, unhandled_exception_handler, utc_timestamp
)
from script_labs.core.rate_limit import limiter, rate_limit_exceeded_handler
from script_labs.core.responses import success_body
from script_labs.database.postgres import PostgresClient
from script_labs.middleware.request_logging import RequestLoggingMiddleware, RequestStats
from script_labs.middleware.sanitization import SanitizationMiddleware
from script_labs.middleware.security import OriginCheckMiddleware, SecurityHeadersMiddleware
from script_labs.modules.auth import routes as auth_routes
from script_labs.modules.labs import routes as labs_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=__version__,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.state.request_stats = RequestStats()

app.add_exception_handler(AuthenticationError, authentication_error_handler)
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Added innermost first: sanitization runs right before routing,
# request logging sees every response including CORS and origin rejections.
app.add_middleware(SanitizationMiddleware)
app.add_middleware(OriginCheckMiddleware, allowed_origins=settings.get_cors_origins_list())
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware, stats=app.state.request_stats)

# Include module routes; each router carries its full /api prefix
app.include_router(auth_routes.router)
app.include_router(labs_routes.router)


@app.on_event("startup")
async def startup_event():
    if not settings.is_test:
        install_process_error_hooks()
        install_loop_error_hook(asyncio.get_running_loop())
    logger.info("Application startup")
    logger.info("Environment: %s", settings.environment)
    logger.info("Health check: http://localhost:%s/health", settings.port)
    if settings.is_development:
        logger.info("API Stats: http://localhost:%s/api/stats", settings.port)


@app.on_event("shutdown")
async def shutdown_event():
    PostgresClient.close()
    logger.info("Application shutdown")


@app.get("/health")
async def health():
    return {
        "success": True,
        "message": "Server is healthy",
        "timestamp": utc_timestamp(),
        "version": __version__,
        "nodeEnv": settings.environment,
    }


if settings.is_development:
    @app.get("/api/stats")
    async def api_stats(request: Request):
        """In-process request counters (development only)."""
        return success_body(request.app.state.request_stats.snapshot())


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
