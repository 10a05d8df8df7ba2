from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from routers.views import views_router
from backend import SnapshotStore, get_store
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

app = FastAPI(title="EphemeralCanvas")

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Viewers open the API from any page
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(views_router)


@app.exception_handler(StarletteHTTPException)
async def plain_text_http_error(request, exc: StarletteHTTPException):
    # Clients show these reasons as-is, so keep them plain text
    logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.detail}")
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.get("/healthz")
def healthz(store: SnapshotStore = Depends(get_store)):
    return {"ok": True, "backend": store.name}


logger.info("FastAPI application initialized")
