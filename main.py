import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

import config
import auth
import connections
import notifications
import posts
import users
from database import close_client, ensure_indexes, get_db
from errors import AppError, register_exception_handlers

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Keep serving without a database so misconfiguration shows up per request
    try:
        ensure_indexes(get_db())
        logger.info("MongoDB indexes ensured")
    except (AppError, PyMongoError) as exc:
        logger.warning("Database unavailable at startup: %s", exc)
    yield
    close_client()


# App setup
app = FastAPI(title="LinkUp API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(posts.router)
app.include_router(connections.router)
app.include_router(notifications.router)

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/")
def read_root():
    return {"message": "LinkUp API is running"}


@app.get("/api/health")
def health():
    return {"success": True, "status": "ok", "message": "Server is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
