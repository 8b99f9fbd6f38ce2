"""
List refresh for the task stack and the ticket list.

Each refresh takes a ticket from the RequestSequencer before it fetches. When
an older refresh finishes after a newer one for the same key, its rows are
dropped and the newer result is served instead. A read that fails with
NetworkError is logged and returns an empty list.

The app holds one ListRefresher (``init_refresher``); the list endpoints of
task_bp and support_bp go through it. Keys carry the caller and the filters,
so a stale fallback only ever serves rows the same query produced.
"""

import logging

from flask import current_app

from app.core.exceptions import NetworkError, StaleResponseError
from app.repositories.resilience import RequestSequencer
from app.services import task_service, ticket_service

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "elevator_list_refresher"

# Most recent result kept per key; oldest keys are evicted past this.
MAX_CACHED_LISTS = 1024


class ListRefresher:
    def __init__(self, sequencer: RequestSequencer | None = None, max_cached: int = MAX_CACHED_LISTS):
        self.sequencer = sequencer or RequestSequencer()
        self.max_cached = max_cached
        self.latest: dict[str, list] = {}

    def refresh(self, key: str, fetch, *args, **kwargs) -> list:
        """Run ``fetch`` and store its rows under ``key`` unless a newer refresh already did."""
        ticket = self.sequencer.begin(key)
        try:
            rows = fetch(*args, **kwargs)
        except NetworkError as exc:
            logger.warning(
                "List refresh for %s failed, showing empty list: %s", key, exc,
                extra={"operation": exc.operation},
            )
            rows = []
        try:
            rows = self.sequencer.accept(key, ticket, rows)
        except StaleResponseError:
            logger.debug("Dropped stale response for %s (request %d)", key, ticket)
            return self.latest.get(key, [])
        self._remember(key, rows)
        return rows

    def _remember(self, key: str, rows: list):
        self.latest.pop(key, None)
        self.latest[key] = rows
        while len(self.latest) > self.max_cached:
            self.latest.pop(next(iter(self.latest)))

    def refresh_tasks(self, project_id: int, user_id: int) -> list:
        key = f"tasks:{project_id}:{user_id}"
        return self.refresh(key, task_service.list_tasks, project_id, user_id)

    def refresh_tickets(self, ctx, **filters) -> list:
        query = "&".join(f"{k}={filters[k]}" for k in sorted(filters) if filters[k] is not None)
        key = f"tickets:{ctx.user_id}:{ctx.effective_role}:{query}"
        return self.refresh(key, ticket_service.list_tickets, ctx, **filters)


def init_refresher(app, refresher: ListRefresher | None = None) -> ListRefresher:
    refresher = refresher or ListRefresher()
    app.extensions[_EXTENSION_KEY] = refresher
    return refresher


def get_refresher() -> ListRefresher:
    return current_app.extensions[_EXTENSION_KEY]
