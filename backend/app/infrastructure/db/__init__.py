"""
Database Infrastructure Package for the Pet Gourmet store

Exports database utilities and repository dependencies.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    build_database_url,
    get_db_manager,
    get_session,
    get_session_context,
    init_db,
    close_db,
)

from app.infrastructure.db.dependencies import (
    SessionDep,
    ProductRepoDep,
    OrderRepoDep,
    SubscriptionRepoDep,
    ProfileRepoDep,
    WebhookLogRepoDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "build_database_url",
    "get_db_manager",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "ProductRepoDep",
    "OrderRepoDep",
    "SubscriptionRepoDep",
    "ProfileRepoDep",
    "WebhookLogRepoDep",
]
