from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from beat_the_odds import game_store
from beat_the_odds.api.deps import get_session
from beat_the_odds.api.models import (
    GameView,
    KeyInputRequest,
    KeyInputResponse,
    PlayerNameRequest,
    ReminderResponse,
    SaveExportResponse,
    SaveImportRequest,
    TitleRequest,
    ToggleRequest,
)
from beat_the_odds.catalog import UpgradeId
from beat_the_odds.codec import SaveImportError
from beat_the_odds.session import GameSession

router = APIRouter()


def _rejected(session: GameSession, fallback: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=session.engine.last_rejection or fallback)


@router.websocket("/ws")
async def game_updates_ws(websocket: WebSocket, session: GameSession = Depends(get_session)) -> None:
    hub = session.hub
    await hub.connect(websocket)
    # Registered; every later state change reaches this client.
    await websocket.send_json({"type": "connected"})

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/state", response_model=GameView)
async def get_state_route(session: GameSession = Depends(get_session)) -> GameView:
    return session.engine.view()


@router.post("/flip", response_model=GameView)
async def flip_route(session: GameSession = Depends(get_session)) -> GameView:
    if not session.engine.request_flip():
        raise _rejected(session, "Flip rejected")
    return session.engine.view()


@router.post("/upgrades/{upgrade_id}/buy", response_model=GameView)
async def buy_upgrade_route(upgrade_id: str, session: GameSession = Depends(get_session)) -> GameView:
    try:
        uid = UpgradeId(upgrade_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown upgrade") from e

    if not session.engine.buy_upgrade(uid):
        raise _rejected(session, "Purchase rejected")
    return session.engine.view()


@router.post("/settings/auto-flip", response_model=GameView)
async def auto_flip_route(payload: ToggleRequest, session: GameSession = Depends(get_session)) -> GameView:
    session.engine.set_auto_flip(payload.enabled)
    return session.engine.view()


@router.post("/settings/auto-buy", response_model=GameView)
async def auto_buy_route(payload: ToggleRequest, session: GameSession = Depends(get_session)) -> GameView:
    session.engine.set_auto_buy(payload.enabled)
    return session.engine.view()


@router.post("/settings/hard-mode", response_model=GameView)
async def hard_mode_route(payload: ToggleRequest, session: GameSession = Depends(get_session)) -> GameView:
    if not session.engine.set_hard_mode(payload.enabled):
        raise _rejected(session, "Hard mode is locked")
    return session.engine.view()


@router.post("/ascend", response_model=GameView)
async def ascend_route(session: GameSession = Depends(get_session)) -> GameView:
    if not session.engine.ascend():
        raise _rejected(session, "Ascension rejected")
    return session.engine.view()


@router.post("/player", response_model=GameView)
async def player_name_route(payload: PlayerNameRequest, session: GameSession = Depends(get_session)) -> GameView:
    try:
        session.engine.set_player_name(payload.name)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return session.engine.view()


@router.post("/player/title", response_model=GameView)
async def player_title_route(payload: TitleRequest, session: GameSession = Depends(get_session)) -> GameView:
    try:
        session.engine.set_active_title(payload.title_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return session.engine.view()


@router.post("/interstitial/confirm", response_model=GameView)
async def interstitial_confirm_route(session: GameSession = Depends(get_session)) -> GameView:
    if not session.engine.confirm_interstitial():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Nothing to confirm")
    return session.engine.view()


@router.post("/keys", response_model=KeyInputResponse)
async def key_input_route(payload: KeyInputRequest, session: GameSession = Depends(get_session)) -> KeyInputResponse:
    action = session.handle_key(code=payload.code, in_text_input=payload.in_text_input)
    return KeyInputResponse(action=action.value)


@router.post("/reset", response_model=GameView)
async def reset_route(full: bool = False, session: GameSession = Depends(get_session)) -> GameView:
    session.hard_reset(full=full)
    return session.engine.view()


@router.get("/save/export", response_model=SaveExportResponse)
async def export_save_route(session: GameSession = Depends(get_session)) -> SaveExportResponse:
    return SaveExportResponse(data=session.export_save())


@router.post("/save/import", response_model=GameView)
async def import_save_route(payload: SaveImportRequest, session: GameSession = Depends(get_session)) -> GameView:
    try:
        session.import_save(payload.data)
    except SaveImportError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return session.engine.view()


@router.get("/leaderboard")
async def leaderboard_route(session: GameSession = Depends(get_session)) -> dict[str, Any]:
    if session.leaderboard is None:
        return session.local_board.load().to_document()
    board = await session.leaderboard.get_leaderboard()
    return board.to_document()


@router.get("/reminders/backup", response_model=ReminderResponse)
async def backup_reminder_route(session: GameSession = Depends(get_session)) -> ReminderResponse:
    today = game_store.utc_today()
    return ReminderResponse(
        show=game_store.should_show_backup_reminder(r=session.r, today=today),
        month=game_store.month_key(today),
    )


@router.post("/reminders/backup", response_model=ReminderResponse)
async def dismiss_backup_reminder_route(session: GameSession = Depends(get_session)) -> ReminderResponse:
    month = game_store.dismiss_backup_reminder(r=session.r)
    return ReminderResponse(show=False, month=month)
