"""Store lookups for billing: which store owns a sale, which stores a caller sees."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from retailbill.core.config import settings
from retailbill.core.exceptions import StoreRequiredError
from retailbill.models.store import Store

logger = logging.getLogger(__name__)


def find_assigned_store(db: Session, caller) -> Optional[int]:
    if caller.store_id is None:
        return None
    exists = db.query(Store.id).filter(Store.id == caller.store_id).scalar()
    return exists


def find_any_store(db: Session) -> Optional[int]:
    """First active store, falling back to any store at all."""
    store_id = db.query(Store.id).filter(Store.is_active.is_(True)).order_by(Store.id).limit(1).scalar()
    if store_id is None:
        store_id = db.query(Store.id).order_by(Store.id).limit(1).scalar()
    return store_id


def resolve_store(db: Session, caller, requested_store_id: Optional[int] = None) -> int:
    """
    Decide which store a sale belongs to.

    Order: explicit store id, the caller's assigned store, then any store when
    the caller's role may fall back (STORE_FALLBACK_ROLES).

    Raises:
        StoreRequiredError: nothing resolves
    """
    if requested_store_id is not None:
        found = db.query(Store.id).filter(Store.id == requested_store_id).scalar()
        if found is None:
            raise StoreRequiredError(
                f"Store {requested_store_id} does not exist.",
                {"storeId": requested_store_id},
            )
        return found

    assigned = find_assigned_store(db, caller)
    if assigned is not None:
        return assigned

    if caller.role in settings.STORE_FALLBACK_ROLES:
        fallback = find_any_store(db)
        if fallback is not None:
            logger.info(f"Auto-assigned store {fallback} for user {caller.id}")
            return fallback

    raise StoreRequiredError(details={
        "userRole": caller.role,
        "userStoreId": caller.store_id,
    })


def list_stores_for_user(db: Session, caller) -> List[Store]:
    """Only the assigned store when the caller has one, otherwise every store."""
    query = db.query(Store)
    if caller.store_id is not None:
        query = query.filter(Store.id == caller.store_id)
    return query.order_by(Store.id).all()
