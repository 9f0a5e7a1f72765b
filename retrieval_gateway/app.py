"""FastAPI application."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from retrieval_gateway.endpoints import router
from retrieval_gateway.errors import (
    DuplicateImage, ImageNotFound, InternalIndexingFailure, InvalidImagePayload,
    MalformedProperties, NoShardsAvailable, RetrievalError, ShardNotFound,
    StorageAlreadyExists
)
from retrieval_gateway.gateway import close_gateway
from retrieval_gateway.schemas import ErrorOut
from retrieval_gateway.settings import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

# HTTP status for each gateway error
ERROR_STATUS_CODES = {
    ShardNotFound: 404,
    ImageNotFound: 404,
    DuplicateImage: 409,
    StorageAlreadyExists: 409,
    InvalidImagePayload: 400,
    MalformedProperties: 400,
    NoShardsAvailable: 503,
    InternalIndexingFailure: 500,
}


def get_status_code_for_error(error: RetrievalError) -> int:
    """Map an error to its HTTP status, defaulting to 500."""
    for error_class, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_class):
            return status_code
    return 500


async def retrieval_error_handler(request: Request, exc: RetrievalError) -> JSONResponse:
    """Render a gateway error as JSON."""
    status_code = get_status_code_for_error(exc)
    if status_code >= 500:
        logger.error("Server error on %s: %s", request.url.path, exc.message)
    else:
        logger.warning("Client error on %s: %s", request.url.path, exc.message)

    body = ErrorOut(
        error=exc.__class__.__name__,
        detail=exc.message,
        storage=exc.storage,
        image_id=exc.image_id
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Drain index queues before exit
    close_gateway()


app = FastAPI(
    title="Image Retrieval Gateway",
    description="Sharded image indexing: ingestion, lookup and deletion",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware (configure for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RetrievalError, retrieval_error_handler)

# Include API router
app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint."""
    prefix = settings.API_PREFIX
    return {
        "service": "Image Retrieval Gateway",
        "version": "1.0.0",
        "endpoints": {
            "create": f"POST {prefix}/images",
            "get": f"GET {prefix}/images/{{id}}",
            "list": f"GET {prefix}/images",
            "get_by_storage": f"GET {prefix}/storages/{{storage}}/images/{{id}}",
            "delete": f"DELETE {prefix}/storages/{{storage}}/images/{{id}}",
            "storages": f"GET|POST {prefix}/storages"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
