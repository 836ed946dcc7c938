from __future__ import annotations

import logging

from fastapi import FastAPI

from beat_the_odds.api.routes import router
from beat_the_odds.config import settings_from_env

app = FastAPI(title="beat-the-odds", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=settings_from_env().log_level)
logger = logging.getLogger(__name__)


@app.on_event("shutdown")
async def _shutdown() -> None:
    session = getattr(app.state, "session", None)
    if session is not None:
        logger.info("Closing game session")
        await session.aclose()
        app.state.session = None


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "beat-the-odds", "version": "0.1.0"}
