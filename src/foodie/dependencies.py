"""Shared FastAPI dependencies."""

from foodie.cache.store import get_cache
from foodie.database import get_session as _get_session
from foodie.database import get_session_factory
from foodie.ws.fanout import get_fanout

get_db = _get_session

__all__ = ["get_cache", "get_db", "get_fanout", "get_session_factory"]
