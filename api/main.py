import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import config, db
from location import router as location_router

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("geochat")

HEALTH_PING_TIMEOUT_S = 1.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Open the store once per process; a BootstrapError aborts startup.
    app.state.ingest_settings = config.IngestSettings.from_env()
    try:
        app.state.store = await db.bootstrap()
    except db.BootstrapError as exc:
        logger.critical(
            "startup_aborted kind=%s attempts=%s error=%s",
            exc.kind.value,
            exc.attempts,
            exc,
        )
        raise
    try:
        yield
    finally:
        await app.state.store.close()
        app.state.store = None


app = FastAPI(lifespan=lifespan)

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
async def log_requests(request: Request, call_next):
    client = request.client.host if request.client else "-"
    logger.info("request method=%s path=%s client=%s", request.method, request.url.path, client)
    return await call_next(request)


app.include_router(location_router.router, tags=["location"])


@app.get("/health")
async def health(store: db.StoreConnection = Depends(db.get_store)) -> JSONResponse:
    if not await db.ping(store, HEALTH_PING_TIMEOUT_S):
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "database": "down"},
        )
    return JSONResponse(content={"status": "ok", "database": "up"})


@app.get("/")
def root() -> dict:
    return {"message": "GeoChat location API"}
