"""Database bootstrapping."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from filevault.db import session as db_session
from filevault.models import Base

logger = logging.getLogger(__name__)


def init_db(engine: Optional[Engine] = None) -> None:
    """Create ``files``, ``folders`` and ``folders_closure`` when missing."""
    bind = engine or db_session.engine
    Base.metadata.create_all(bind=bind)
    logger.info("Storage tables ready on %s", bind.url.render_as_string(hide_password=True))
