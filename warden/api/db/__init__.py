"""Database package for WARDEN API."""

from warden.api.db.models import AdminUser, AuditLog, Base, ImmutableRecordError
from warden.api.db.session import close_db, get_engine, get_session_maker, init_db

__all__ = [
    "Base",
    "AdminUser",
    "AuditLog",
    "ImmutableRecordError",
    "get_engine",
    "get_session_maker",
    "init_db",
    "close_db",
]
