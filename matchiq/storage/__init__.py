"""Storage module for database operations."""

from matchiq.storage.database import get_engine, get_session_factory, init_db, session_scope
from matchiq.storage.models import Deal, ExchangeRate, InvestorRecord, MatchRecord, RescanRun, TargetRecord

__all__ = [
    "init_db",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "Deal",
    "ExchangeRate",
    "InvestorRecord",
    "MatchRecord",
    "RescanRun",
    "TargetRecord",
]
