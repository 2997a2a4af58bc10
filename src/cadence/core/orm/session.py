"""SQLAlchemy engine factory and schema bootstrap.

* ``create_cadence_engine`` -- engine from a URL with SQLite tweaks.
* ``init_db``               -- create all cadence tables.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from cadence.core.orm.base import CadenceBase


def create_cadence_engine(
    url: str = "sqlite:///cadence.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow:
        Connection pool parameters (ignored for SQLite).
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        if in_memory:
            # One shared connection, otherwise every checkout sees an empty database
            kwargs.setdefault("poolclass", StaticPool)

        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def init_db(engine: Engine) -> None:
    """Create all cadence tables that do not exist yet."""
    # Registers the table classes on the metadata
    from cadence.core.orm import tables  # noqa: F401

    CadenceBase.metadata.create_all(engine)


def drop_db(engine: Engine) -> None:
    """Drop all cadence tables."""
    from cadence.core.orm import tables  # noqa: F401

    CadenceBase.metadata.drop_all(engine)
