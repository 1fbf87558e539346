"""Event-driven invalidation of materialized bookability snapshots

Any flush that writes a Contract, SupervisionRelationship or Payer marks the
current snapshot of the affected payers stale, including writes made by admin
tooling that never goes through the contract or supervision stores. Stale
snapshots are never served; readers fall back to the live recompute until the
next refresh.
"""

import structlog
from sqlalchemy import event
from sqlalchemy.orm import Session

from care_scheduling.models.bookability import BookabilitySnapshot
from care_scheduling.models.contracts import Contract
from care_scheduling.models.providers import Payer
from care_scheduling.models.supervision import SupervisionRelationship

logger = structlog.get_logger()


def _touched_payers(session: Session) -> dict:
    touched = {}
    for state, objects in (("new", session.new), ("dirty", session.dirty), ("deleted", session.deleted)):
        for obj in objects:
            if state == "dirty" and not session.is_modified(obj):
                continue
            if isinstance(obj, (Contract, SupervisionRelationship)):
                payer_id = obj.payer_id
            elif isinstance(obj, Payer):
                payer_id = obj.id
            else:
                continue
            if payer_id is not None:
                touched.setdefault(payer_id, f"{type(obj).__name__.lower()}_{state}")
    return touched


@event.listens_for(Session, "before_flush")
def mark_snapshots_stale(session, flush_context, instances):
    touched = _touched_payers(session)
    if not touched:
        return

    with session.no_autoflush:
        snapshots = session.query(BookabilitySnapshot).filter(
            BookabilitySnapshot.payer_id.in_(list(touched)),
            BookabilitySnapshot.is_current.is_(True),
            BookabilitySnapshot.is_stale.is_(False),
        ).all()

    for snapshot in snapshots:
        snapshot.is_stale = True
        snapshot.stale_reason = touched[snapshot.payer_id]
        logger.info(
            "Bookability snapshot marked stale",
            payer_id=str(snapshot.payer_id),
            version=snapshot.version,
            entry_count=snapshot.entry_count,
            reason=snapshot.stale_reason,
        )
