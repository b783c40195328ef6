"""Create all tables. Run on app startup."""
import logging

from sqlalchemy.engine import Engine

from retailbill.db.base import Base
from retailbill.db.session import engine as default_engine
from retailbill.models import customer, inventory, invoice_counter, sale, store, user  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db(bind: Engine | None = None) -> None:
    bind = bind or default_engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"Database schema ready on {bind.url.render_as_string(hide_password=True)}")
