from __future__ import annotations

from fastapi.requests import HTTPConnection

from beat_the_odds.config import settings_from_env
from beat_the_odds.session import GameSession, create_session


async def get_session(conn: HTTPConnection) -> GameSession:
    # Async so the session's timers bind to the running event loop.
    session: GameSession | None = getattr(conn.app.state, "session", None)
    if session is None:
        session = create_session(settings_from_env())
        session.start()
        conn.app.state.session = session
    return session
