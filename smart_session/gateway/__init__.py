"""Database gateways consumed by SessionRecord."""

from .base import DatabaseGateway
from .factory import build_engine, build_gateway
from .sqlalchemy_gateway import SqlAlchemyGateway

__all__ = [
    "DatabaseGateway",
    "SqlAlchemyGateway",
    "build_engine",
    "build_gateway",
]
