import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware

from config import CORS_ORIGINS, LOG_LEVEL
from dataBase import store
from errors import SlotSwapError
from routes import slot_routes, trash_routes, exchange_routes, notification_routes
from utils import utcnow

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting SlotSwap API with {store.backend} store")
    await store.ensure_indexes()
    yield


app = FastAPI(title="SlotSwap API", version="1.0.0", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(SlotSwapError)
async def slot_swap_error_handler(request: Request, exc: SlotSwapError):
    if exc.status_code == 409:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.reason}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# /slots/trash and friends must be matched before /slots/{slot_id}
app.include_router(trash_routes)
app.include_router(slot_routes)
app.include_router(exchange_routes)
app.include_router(notification_routes)


@app.get("/")
def root():
    return RedirectResponse(url="/docs")


@app.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": utcnow().isoformat(),
        "store": store.backend,
    }
