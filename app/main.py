import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.cache import cache
from app.config import settings
from app.database import create_schema
from app.exceptions import BlogError, ConflictError, InternalError, NotFoundError, ValidationError
from app.middleware import TimingMiddleware
from app.routers import categories, comments, maintenance, metrics, posts, tags, users

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    InternalError: 500,
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await cache.connect()  # falls back to no cache when Redis is down
    if settings.AUTO_CREATE_SCHEMA:
        await create_schema()
    yield
    # Shutdown
    await cache.disconnect()

app = FastAPI(
    title="Blog API - Relationship Consistency Engine",
    description="A blog backend keeping bidirectional references between users, posts, "
    "categories, tags and threaded comments consistent without cross-document transactions",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(BlogError)
async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"message": exc.message, "success": False, "data": None},
    )

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content={"message": f"Invalid request: {problems}", "success": False, "data": None},
    )

# Routers
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(categories.router)
app.include_router(tags.router)
app.include_router(comments.router)
app.include_router(metrics.router)
app.include_router(maintenance.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
