"""FastAPI application entrypoint for the chat backend."""
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from . import messages, realtime, rpc, store, tables
from .auth import hash_password
from .config import ADMIN_PASSWORD, ADMIN_USERNAME
from .database import SessionLocal, init_db
from .errors import ChatError, chat_error_handler, internal_error_handler, request_validation_handler
from .logging_config import configure_logging

logger = configure_logging()


def seed_admin() -> None:
    if not (ADMIN_USERNAME and ADMIN_PASSWORD):
        return
    db = SessionLocal()
    try:
        if store.get_admin_by_username(db, ADMIN_USERNAME) is None:
            store.ensure_admin(db, ADMIN_USERNAME, hash_password(ADMIN_PASSWORD))
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    seed_admin()
    logger.info("SERVER_STARTED")
    yield


app = FastAPI(title="Coin Chat Backend", version="1.0.0", lifespan=lifespan)
app.add_exception_handler(ChatError, chat_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, internal_error_handler)
app.include_router(messages.router)
app.include_router(rpc.router)
app.include_router(tables.router)
app.include_router(realtime.router)


@app.get("/")
def root():
    return {"status": "ok"}


def run() -> None:
    uvicorn.run("coin_chat.server.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
