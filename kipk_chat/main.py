import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kipk_chat.api import routes
from kipk_chat.api.routes import router as api_router
from kipk_chat.core.settings import SETTINGS

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]

origins = SETTINGS.cors_origins or DEFAULT_CORS_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await routes.orchestrator.aclose()
    logger.info("chat stores closed")


app = FastAPI(title="kipk-chat", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.include_router(api_router)


def run() -> None:
    uvicorn.run(
        "kipk_chat.main:app",
        host=os.getenv("CHAT_HOST", "0.0.0.0"),
        port=int(os.getenv("CHAT_PORT", "8000")),
    )


if __name__ == "__main__":
    run()
