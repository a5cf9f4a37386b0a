"""Inventory, procurement and surgical consumption rules for an orthopedic
implant stockroom.

The package is organised in layers:

* ``core`` holds configuration, logging, the role matrix, catalog constants
  and the pure pricing rules.
* ``db`` and ``models`` describe the SQLAlchemy schema.
* ``schemas`` are the pydantic payloads commands accept and return.
* ``crud`` owns the inventory ledger and the record lifecycle.
* ``services`` builds read-only analytics on top of both.

Every command takes a ``Session`` and an explicit ``SessionContext``; nothing
reads the current user from global state.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

__version__ = "0.1.0"


def bootstrap(bind: Engine | None = None) -> None:
    """Configure logging and create the tables on ``bind`` (or the default engine)."""

    from .core.logging import configure_logging
    from .db.session import init_db

    configure_logging()
    init_db(bind)


__all__ = ["__version__", "bootstrap"]
