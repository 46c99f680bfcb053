import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from .database import init_db
from .routes import router
from .services.stores import NotFound, StoreConflict, StoreError
from .settings.config import settings

app = FastAPI(title="Family Tree API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Route Includes
# ----------------------
app.include_router(router)

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# -----------------------------------------------------
# Store errors raised outside the relationship writer
# (person CRUD, perspective reads, integrity) map to HTTP here.
# -----------------------------------------------------
@app.exception_handler(NotFound)
async def _not_found_handler(request: Request, exc: NotFound):
    return JSONResponse({"detail": str(exc) or "Not found"}, status_code=404)

@app.exception_handler(StoreConflict)
async def _conflict_handler(request: Request, exc: StoreConflict):
    logger.warning("Conflict on %s: %s", request.url.path, exc)
    return JSONResponse({"detail": str(exc)}, status_code=409)

@app.exception_handler(StoreError)
async def _store_error_handler(request: Request, exc: StoreError):
    logger.error("Store failure on %s: %s", request.url.path, exc)
    return JSONResponse({"detail": "Storage unavailable"}, status_code=503)

@app.exception_handler(ValueError)
async def _value_error_handler(request: Request, exc: ValueError):
    return JSONResponse({"detail": str(exc)}, status_code=422)


@app.on_event("startup")
async def on_startup():
    from . import models  # Required for SQLAlchemy model detection
    await init_db()
