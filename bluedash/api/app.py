"""FastAPI app, CORS, error mapping, and route registration."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging in the worker process (so core INFO logs are visible with uvicorn --reload)
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(name)s: %(message)s",
)

from bluedash.api.state import AppState, get_state
from bluedash.core.process_runner import ProcessError

# Import routes after state to avoid circular imports
from bluedash.api.routes import audio, devices, media, pairing

__all__ = ["app", "AppState", "get_state"]

logger = logging.getLogger(__name__)

# Unhandled errors bypass CORSMiddleware, so their response carries the header itself
_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Bluetooth companion service ready")
    yield
    await get_state().shutdown()


app = FastAPI(
    title="bluedash",
    description="Bluetooth companion service for the digital dash",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse({"error": message}, status_code=400)


@app.exception_handler(ProcessError)
async def process_error(request: Request, exc: ProcessError):
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse({"error": str(exc) or "Unknown error"}, status_code=500, headers=_CORS_HEADERS)


app.include_router(devices.router, tags=["devices"])
app.include_router(pairing.router, tags=["pairing"])
app.include_router(media.router, tags=["media"])
app.include_router(audio.router, tags=["audio"])
