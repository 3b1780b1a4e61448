import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from components import router as components_router
from core.db import Database
from core.errors import AppError
from core.logging import REQUEST_ID_HEADER, configure_logging, set_request_id
from core.settings import Settings
from skus import router as skus_router
from storage.blob import BlobStorage

logger = logging.getLogger(__name__)

settings = Settings.from_env()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One DB pool and one blob client per process.
    await app.state.db.open()
    await app.state.storage.open()
    try:
        yield
    finally:
        await app.state.storage.close()
        await app.state.db.close()


app = FastAPI(lifespan=lifespan)

# Shared resources live on app.state; they are opened by the lifespan above.
app.state.settings = settings
app.state.db = Database(settings)
app.state.storage = BlobStorage(settings)

# Allow local frontend dev server to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(AppError)
async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed code=%s message=%s error=%s", exc.code, exc.message, exc.error)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_body()))


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message, "error": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {"success": False, "message": "Invalid request", "error": "VALIDATION_ERROR", "details": exc.errors()}
        ),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_failed_unhandled error=%s", exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": str(exc)},
    )


app.include_router(components_router.router, tags=["components"])
app.include_router(skus_router.router, tags=["skus"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "sustainability data portal api"}
