from .session import engine, SessionLocal, get_session_factory, init_db, close_db
from .base import Base
from .unit_of_work import UnitOfWork, Transaction

__all__ = [
    "engine",
    "SessionLocal",
    "get_session_factory",
    "init_db",
    "close_db",
    "Base",
    "UnitOfWork",
    "Transaction",
]
