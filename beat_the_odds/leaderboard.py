"""Shared remote leaderboard with a local fallback.

The remote store is a single JSON document that is read, merged and written back
whole. All operations of one client run strictly one at a time so two submissions
from this process never interleave their read-modify-write cycles. Nothing here
protects against other processes writing concurrently (last writer wins).
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import httpx
import redis

from beat_the_odds.api.models import GlobalLeaderboard, LeaderboardCategory, LeaderboardEntry, ScoreUpdate
from beat_the_odds.game_store import LOCAL_BOARD_KEY


logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ENTRIES = 20
CHEATER_NAME_FOLDED = "cheater"


# ---- merge rules ----


def normalize(entries: Iterable[LeaderboardEntry]) -> list[LeaderboardEntry]:
    """Score descending, one entry per name (the best), top 20."""

    ordered = sorted(entries, key=lambda e: e.score, reverse=True)
    seen: set[str] = set()
    out: list[LeaderboardEntry] = []
    for e in ordered:
        if e.name in seen:
            continue
        seen.add(e.name)
        out.append(e)
    return out[:MAX_ENTRIES]


def merge_entry(entries: list[LeaderboardEntry], entry: LeaderboardEntry) -> list[LeaderboardEntry]:
    """Apply one submission to a category.

    An existing entry with the same name is replaced on a strictly higher score,
    or on a tied score with a different title. Otherwise it is left alone.
    """

    merged = list(entries)
    for idx, existing in enumerate(merged):
        if existing.name != entry.name:
            continue
        if entry.score > existing.score or (entry.score == existing.score and entry.title != existing.title):
            merged[idx] = entry
        return normalize(merged)
    merged.append(entry)
    return normalize(merged)


def apply_updates(board: GlobalLeaderboard, updates: Iterable[ScoreUpdate]) -> bool:
    """Merge updates into `board` in place. Returns True if any category changed."""

    changed = False
    for update in updates:
        before = board.category(update.category)
        after = merge_entry(before, update.entry)
        if after != before:
            setattr(board, update.category.value, after)
            changed = True
    return changed


def normalize_board(board: GlobalLeaderboard) -> bool:
    """Restore sort order, unique names and the size cap in every category.

    Returns True if anything had to be repaired.
    """

    repaired = False
    for cat in LeaderboardCategory:
        before = board.category(cat)
        after = normalize(before)
        if after != before:
            setattr(board, cat.value, after)
            repaired = True
    return repaired


def remove_cheaters(board: GlobalLeaderboard) -> int:
    removed = 0
    for cat in LeaderboardCategory:
        entries = board.category(cat)
        kept = [e for e in entries if e.name.casefold() != CHEATER_NAME_FOLDED]
        if len(kept) != len(entries):
            removed += len(entries) - len(kept)
            setattr(board, cat.value, kept)
    return removed


# ---- local fallback ----


class LocalBoardStore:
    """Per-device copy of the board, used when the remote cannot be reached."""

    def __init__(self, *, r: redis.Redis, key: str = LOCAL_BOARD_KEY) -> None:
        self._r = r
        self._key = key

    def load(self) -> GlobalLeaderboard:
        raw = self._r.get(self._key)
        if not raw:
            return GlobalLeaderboard()
        try:
            return GlobalLeaderboard.from_document(json.loads(raw))
        except ValueError:
            logger.warning("Local leaderboard is unreadable; starting empty")
            return GlobalLeaderboard()

    def save(self, board: GlobalLeaderboard) -> None:
        self._r.set(self._key, json.dumps(board.to_document()))

    def apply(self, updates: Iterable[ScoreUpdate]) -> GlobalLeaderboard:
        board = self.load()
        changed = apply_updates(board, updates)
        if normalize_board(board) or changed:
            self.save(board)
        return board


# ---- serialization ----


class SerialQueue:
    """FIFO of async operations run by a single worker task.

    `submit` is synchronous and returns a future for the operation's result. A
    failing operation fails only its own future.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]] | None] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    def _ensure_worker(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())
        return self._queue

    def submit(self, operation: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        if self._closed:
            raise RuntimeError("queue is closed")
        queue = self._ensure_worker()
        fut: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        queue.put_nowait((operation, fut))
        return fut

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                operation, fut = item
                if fut.cancelled():
                    continue
                try:
                    result = await operation()
                except Exception as e:
                    logger.exception("Leaderboard operation failed")
                    if not fut.done():
                        fut.set_exception(e)
                else:
                    if not fut.done():
                        fut.set_result(result)
            finally:
                self._queue.task_done()

    async def aclose(self) -> None:
        """Run everything already queued, then stop the worker."""

        self._closed = True
        if self._queue is None or self._worker is None or self._worker.done():
            return
        self._queue.put_nowait(None)
        await self._worker


def _now_ms() -> int:
    return int(time.time() * 1000)


class LeaderboardClient:
    def __init__(
        self,
        *,
        url: str,
        local: LocalBoardStore,
        backup_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._url = url
        self._backup_url = backup_url
        self._local = local
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_s)
        self._now_ms = now_ms
        self._queue = SerialQueue()

    async def _get(self, url: str) -> httpx.Response:
        # Cache buster; some static JSON hosts cache aggressively.
        return await self._http.get(url, params={"_": self._now_ms()})

    async def _fetch_strict(self) -> tuple[GlobalLeaderboard, str]:
        """Read the remote board. Raises on any transport or HTTP failure.

        Returns the board and the url of the node that served it, which is
        where a following write must go.
        """

        node = self._url
        resp = await self._get(node)
        if resp.status_code == httpx.codes.TOO_MANY_REQUESTS and self._backup_url:
            logger.warning("Leaderboard primary is rate limited; reading from backup")
            node = self._backup_url
            resp = await self._get(node)
        resp.raise_for_status()
        return GlobalLeaderboard.from_document(resp.json()), node

    async def _write(self, node: str, board: GlobalLeaderboard) -> None:
        resp = await self._http.post(node, json=board.to_document())
        resp.raise_for_status()

    async def _submit(self, updates: list[ScoreUpdate]) -> GlobalLeaderboard:
        try:
            board, node = await self._fetch_strict()
        except (httpx.HTTPError, ValueError) as e:
            # Never write a board we could not read; it would clobber the remote.
            logger.warning("Leaderboard read failed, keeping scores locally: %s", e)
            return self._local.apply(updates)

        changed = apply_updates(board, updates)
        repaired = normalize_board(board)
        if not (changed or repaired):
            return board

        try:
            await self._write(node, board)
        except httpx.HTTPError as e:
            logger.warning("Leaderboard write failed, keeping scores locally: %s", e)
            return self._local.apply(updates)

        logger.info("Submitted %s leaderboard update(s)", len(updates))
        return board

    async def _wipe_cheaters(self) -> int:
        try:
            board, node = await self._fetch_strict()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Leaderboard read failed, cheaters not wiped: %s", e)
            return 0

        removed = remove_cheaters(board)
        if not removed:
            return 0
        normalize_board(board)
        try:
            await self._write(node, board)
        except httpx.HTTPError as e:
            logger.warning("Leaderboard write failed, cheaters not wiped: %s", e)
            return 0
        logger.info("Wiped %s cheater entries", removed)
        return removed

    def submit_scores(self, updates: Iterable[ScoreUpdate]) -> asyncio.Future[GlobalLeaderboard]:
        batch = list(updates)
        return self._queue.submit(lambda: self._submit(batch))

    def submit_score(self, category: LeaderboardCategory, entry: LeaderboardEntry) -> asyncio.Future[GlobalLeaderboard]:
        return self.submit_scores([ScoreUpdate(category=category, entry=entry)])

    def submit_scores_nowait(self, updates: Iterable[ScoreUpdate]) -> None:
        """Fire-and-forget variant for synchronous callers on the event loop."""

        fut = self.submit_scores(updates)
        fut.add_done_callback(_consume_result)

    def wipe_cheaters(self) -> asyncio.Future[int]:
        return self._queue.submit(self._wipe_cheaters)

    def wipe_cheaters_nowait(self) -> None:
        self.wipe_cheaters().add_done_callback(_consume_result)

    async def get_leaderboard(self) -> GlobalLeaderboard:
        try:
            board, _ = await self._fetch_strict()
            return board
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Leaderboard read failed, showing local board: %s", e)
            return self._local.load()

    async def aclose(self) -> None:
        await self._queue.aclose()
        if self._owns_http:
            await self._http.aclose()


def _consume_result(fut: asyncio.Future[Any]) -> None:
    # Failures are already logged by the worker; retrieve them so asyncio stays quiet.
    if not fut.cancelled():
        fut.exception()
