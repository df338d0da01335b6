"""Request-scoped access to the services held on app.state."""

from fastapi import Request

from ..coordinator import RunCoordinator
from ..db import Database
from ..sources import RedditCollector


def get_store(request: Request) -> Database:
    return request.app.state.store


def get_collector(request: Request) -> RedditCollector:
    return request.app.state.collector


def get_coordinators(request: Request) -> dict[str, RunCoordinator]:
    return request.app.state.coordinators
