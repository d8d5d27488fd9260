"""Timed reveal of shuffled matchmaking candidates."""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import suppress
from datetime import date
from typing import Callable, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from whoami_chat.domain.notifications import NotificationDispatcher
from whoami_chat.obs import metrics as obs_metrics
from whoami_chat.settings import settings

from .exceptions import InvalidFilters, SearchNotAllowed
from .filters import build_pool
from .models import DirectoryUser, MatchmakingFilters, MatchState

logger = logging.getLogger(__name__)

RevealListener = Callable[[DirectoryUser], None]


class MatchmakingQueue:
    """Filters -> shuffled pool -> one reveal per interval until exhausted.

    At most one reveal timer runs per queue. Starting a new search clears the
    previous timer first; `cancel()` stops it and discards the search.
    """

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        interval: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._interval = settings.match_reveal_interval_seconds if interval is None else float(interval)
        self._rng = rng or random.Random()
        self.state = MatchState.IDLE
        self.filters = MatchmakingFilters()
        self._pool: List[DirectoryUser] = []
        self._revealed: List[DirectoryUser] = []
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[RevealListener] = []

    @property
    def pool(self) -> Tuple[DirectoryUser, ...]:
        return tuple(self._pool)

    @property
    def revealed(self) -> Tuple[DirectoryUser, ...]:
        return tuple(self._revealed)

    @property
    def is_complete(self) -> bool:
        return self.state is MatchState.COMPLETE

    @property
    def has_timer(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_filters(self, filters: Optional[MatchmakingFilters] = None, **changes) -> MatchmakingFilters:
        if self.state is MatchState.SEARCHING:
            raise SearchNotAllowed()
        if filters is None:
            try:
                filters = MatchmakingFilters.model_validate({**self.filters.model_dump(), **changes})
            except ValidationError as exc:
                raise InvalidFilters(str(exc.errors()[0].get("msg", "invalid_filters"))) from exc
        self.filters = filters
        self.state = MatchState.FILTERS
        return filters

    def subscribe(self, listener: RevealListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    async def start(
        self,
        users: Iterable[DirectoryUser],
        *,
        today: Optional[date] = None,
        exclude_ids: Iterable[str] = (),
    ) -> List[DirectoryUser]:
        """Build and shuffle the pool, then begin revealing candidates."""
        await self._stop_timer()
        pool = build_pool(users, self.filters, today, exclude_ids)
        self._rng.shuffle(pool)
        self._pool = pool
        self._revealed = []
        obs_metrics.observe_match_pool(len(pool))
        if not pool:
            self.state = MatchState.COMPLETE
            obs_metrics.inc_match_search("empty")
            return []
        self.state = MatchState.SEARCHING
        self._task = asyncio.get_running_loop().create_task(self._reveal_loop(), name="matchmaking-reveal")
        return list(pool)

    async def cancel(self) -> None:
        await self._stop_timer()
        if self.state in (MatchState.SEARCHING, MatchState.COMPLETE):
            self._pool = []
            self._revealed = []
            self.state = MatchState.FILTERS
            obs_metrics.inc_match_search("cancelled")

    async def wait(self) -> None:
        """Wait for the running search, if any, to finish revealing."""
        task = self._task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def _stop_timer(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _reveal_loop(self) -> None:
        try:
            while self._pool:
                await asyncio.sleep(self._interval)
                candidate = self._pool.pop(0)
                self._revealed.append(candidate)
                obs_metrics.inc_match_reveal()
                self._notify(candidate)
                await self._announce(candidate)
            self.state = MatchState.COMPLETE
            obs_metrics.inc_match_search("complete")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("matchmaking reveal loop failed")
            self._pool = []
            self.state = MatchState.FILTERS
            obs_metrics.inc_match_search("failed")
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    def _notify(self, candidate: DirectoryUser) -> None:
        for listener in list(self._listeners):
            try:
                listener(candidate)
            except Exception:
                logger.exception("match listener failed")

    async def _announce(self, candidate: DirectoryUser) -> None:
        if self._dispatcher is None:
            return
        name = candidate.username or "Someone"
        try:
            await self._dispatcher.dispatch(
                "match",
                "New match found",
                f"{name} matches your filters.",
                {"userId": candidate.id},
            )
        except Exception:
            logger.warning("match notification failed", exc_info=True)
