"""Database package for the asset marketplace."""
from .connection import (
    build_engine,
    build_session_factory,
    close_db,
    get_db,
    get_session_factory,
    init_db,
)
from .models import (
    APPROVAL_STATES,
    Asset,
    Base,
    Category,
    Payment,
    Purchase,
    User,
)

__all__ = [
    "APPROVAL_STATES",
    "Asset",
    "Base",
    "Category",
    "Payment",
    "Purchase",
    "User",
    "build_engine",
    "build_session_factory",
    "close_db",
    "get_db",
    "get_session_factory",
    "init_db",
]
