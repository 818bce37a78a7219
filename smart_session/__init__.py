"""SQL session persistence sharing its table with ORM-backed session stores."""

from .gateway import DatabaseGateway, SqlAlchemyGateway, build_engine, build_gateway
from .session_record import SessionRecord, SessionRow, UnsavedSessionError

__all__ = [
    "DatabaseGateway",
    "SqlAlchemyGateway",
    "build_engine",
    "build_gateway",
    "SessionRecord",
    "SessionRow",
    "UnsavedSessionError",
]
