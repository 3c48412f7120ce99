"""
Database engine initialisation and table definitions.
"""

import sys
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine

from dashboard_core.config import DB_POOL_TIMEOUT_SECONDS, get_env

metadata = MetaData()

dashboard_definitions = Table(
    "dashboard_definitions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("key", Text, nullable=False),
    Column("owner_user_id", String(255), nullable=False, server_default="system"),
    Column("is_system", Boolean, nullable=False, server_default="0"),
    Column("name", Text, nullable=False),
    Column("description", Text),
    # public: every authenticated user; private: owner or explicit shares
    Column("visibility", String(16), nullable=False, server_default="public"),
    Column("scope", JSON, nullable=False),
    # config-language version, not renderer version
    Column("version", Integer, nullable=False, server_default="0"),
    Column("definition", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("key", name="dashboard_definitions_key_unique"),
    Index("dashboard_definitions_owner_idx", "owner_user_id"),
    Index("dashboard_definitions_visibility_idx", "visibility"),
)

dashboard_definition_shares = Table(
    "dashboard_definition_shares",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "dashboard_id",
        String(36),
        ForeignKey("dashboard_definitions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("principal_type", String(16), nullable=False),
    Column("principal_id", String(255), nullable=False),
    Column("permission", String(16), nullable=False, server_default="view"),
    Column("shared_by", String(255), nullable=False),
    Column("shared_by_name", String(255)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint(
        "dashboard_id", "principal_type", "principal_id",
        name="dashboard_definition_shares_unique",
    ),
    Index("dashboard_definition_shares_dashboard_idx", "dashboard_id"),
    Index("dashboard_definition_shares_principal_idx", "principal_type", "principal_id"),
)

# principal_type: user | role | group
action_grants = Table(
    "action_grants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_type", String(16), nullable=False),
    Column("principal_id", String(255), nullable=False),
    Column("action_key", String(255), nullable=False),
    UniqueConstraint("principal_type", "principal_id", "action_key", name="action_grants_unique"),
    Index("action_grants_action_idx", "action_key"),
)

# unit_type: location | division | department
org_assignments = Table(
    "org_assignments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(255), nullable=False),
    Column("unit_type", String(16), nullable=False),
    Column("unit_id", String(255), nullable=False),
    UniqueConstraint("user_id", "unit_type", "unit_id", name="org_assignments_unique"),
    Index("org_assignments_user_idx", "user_id"),
)


def make_engine(db_uri: str) -> Engine:
    """Create an engine whose connection checkout is bounded in time."""
    if db_uri.startswith("sqlite"):
        # upstream probes run on worker threads
        return create_engine(
            db_uri,
            future=True,
            connect_args={"check_same_thread": False, "timeout": DB_POOL_TIMEOUT_SECONDS},
        )
    return create_engine(db_uri, future=True, pool_timeout=DB_POOL_TIMEOUT_SECONDS)


def init_engine(db_uri: Optional[str] = None) -> Engine:
    """Create a SQLAlchemy engine and verify the connection."""
    engine = make_engine(db_uri or get_env("DB_URI"))
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def create_schema(engine: Engine) -> None:
    """Create any missing tables."""
    metadata.create_all(engine)
