"""Database layer."""

from dreamcut.db.models import AssetModel, Base, MessageModel, QueryModel
from dreamcut.db.session import (
    check_connection,
    get_engine,
    get_session_context,
    make_session_factory,
)

__all__ = [
    "Base",
    "check_connection",
    "get_engine",
    "get_session_context",
    "make_session_factory",
    # Models
    "AssetModel",
    "MessageModel",
    "QueryModel",
]
