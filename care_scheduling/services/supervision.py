"""Supervision Graph: supervisee -> supervisor relationships per payer"""

from datetime import date
from typing import Callable, List, Optional

import structlog
from sqlalchemy.orm import Session

from care_scheduling.errors import SupervisionConflict, UnknownEntity, parse_uuid
from care_scheduling.models import (
    Designation, Payer, Provider, SupervisionLevel, SupervisionRelationship
)
from care_scheduling.services.contracts import refresh_bookability_hook
from care_scheduling.services.effective_dates import covers, windows_overlap

logger = structlog.get_logger()


class SupervisionGraph:
    """Reads and writes supervision relationships"""

    def __init__(self, db: Session, on_change: Optional[Callable] = None):
        self.db = db
        self.on_change = on_change if on_change is not None else refresh_bookability_hook(db)
        self.logger = logger.bind(service="supervision_graph")

    def add_relationship(
        self,
        supervisee_id,
        supervisor_id,
        payer_id,
        effective_date: date,
        designation: str = Designation.PRIMARY.value,
        supervision_level: str = SupervisionLevel.SIGN_OFF_ONLY.value,
        expiration_date: Optional[date] = None,
        concurrency_cap: Optional[int] = None,
    ) -> SupervisionRelationship:
        supervisee_id = parse_uuid(supervisee_id, "supervisee_id")
        supervisor_id = parse_uuid(supervisor_id, "supervisor_id")
        payer_id = parse_uuid(payer_id, "payer_id")
        designation = Designation(designation).value
        supervision_level = SupervisionLevel(supervision_level).value

        if supervisee_id == supervisor_id:
            raise SupervisionConflict("A provider cannot supervise themselves",
                                      {"provider_id": str(supervisee_id)})
        for provider_id in (supervisee_id, supervisor_id):
            if self.db.get(Provider, provider_id) is None:
                raise UnknownEntity("Provider", provider_id)
        if self.db.get(Payer, payer_id) is None:
            raise UnknownEntity("Payer", payer_id)
        if expiration_date is not None and expiration_date <= effective_date:
            raise ValueError("expiration_date must be after effective_date")

        if designation == Designation.PRIMARY.value:
            existing = self.db.query(SupervisionRelationship).filter(
                SupervisionRelationship.supervisee_id == supervisee_id,
                SupervisionRelationship.payer_id == payer_id,
                SupervisionRelationship.designation == Designation.PRIMARY.value,
            ).all()
            for other in existing:
                if windows_overlap(effective_date, expiration_date, other.effective_date, other.expiration_date):
                    raise SupervisionConflict(
                        "Supervisee already has a primary supervisor for this payer in an overlapping window",
                        {
                            "supervisee_id": str(supervisee_id),
                            "payer_id": str(payer_id),
                            "existing_supervisor_id": str(other.supervisor_id),
                        },
                    )

        relationship = SupervisionRelationship(
            supervisee_id=supervisee_id,
            supervisor_id=supervisor_id,
            payer_id=payer_id,
            designation=designation,
            supervision_level=supervision_level,
            effective_date=effective_date,
            expiration_date=expiration_date,
            concurrency_cap=concurrency_cap,
        )
        self.db.add(relationship)
        self.db.commit()
        self.logger.info(
            "Supervision relationship added",
            relationship_id=str(relationship.id),
            supervisee_id=str(supervisee_id),
            supervisor_id=str(supervisor_id),
            payer_id=str(payer_id),
            designation=designation,
            supervision_level=supervision_level,
        )
        self.on_change(payer_id)
        return relationship

    def end_relationship(self, relationship_id, expiration_date: date) -> SupervisionRelationship:
        relationship_id = parse_uuid(relationship_id, "relationship_id")
        relationship = self.db.get(SupervisionRelationship, relationship_id)
        if relationship is None:
            raise UnknownEntity("SupervisionRelationship", relationship_id)
        relationship.expiration_date = expiration_date
        self.db.commit()
        self.logger.info("Supervision relationship ended", relationship_id=str(relationship_id),
                         expiration_date=expiration_date)
        self.on_change(relationship.payer_id)
        return relationship

    def active_relationships(self, payer_id, as_of: date) -> List[SupervisionRelationship]:
        payer_id = parse_uuid(payer_id, "payer_id")
        rows = self.db.query(SupervisionRelationship).filter(
            SupervisionRelationship.payer_id == payer_id,
        ).order_by(SupervisionRelationship.supervisee_id, SupervisionRelationship.effective_date).all()
        return [r for r in rows if covers(r.effective_date, r.expiration_date, as_of)]

    def primary_supervisor(self, supervisee_id, payer_id, as_of: date) -> Optional[SupervisionRelationship]:
        supervisee_id = parse_uuid(supervisee_id, "supervisee_id")
        for relationship in self.active_relationships(payer_id, as_of):
            if relationship.supervisee_id == supervisee_id and relationship.designation == Designation.PRIMARY.value:
                return relationship
        return None
