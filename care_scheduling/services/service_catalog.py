"""Service Catalog Resolver

Picks the one canonical bookable service instance for a payer and a service
category. Each filter is its own stage so a zero result can be attributed to
the stage that emptied the candidate set.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from sqlalchemy.orm import Session, joinedload

from care_scheduling.config import settings
from care_scheduling.errors import (
    AmbiguousServiceInstance, MissingDuration, NoBookableServiceForPayer, UnknownEntity, parse_uuid
)
from care_scheduling.models import Payer, Service, ServiceInstance

logger = structlog.get_logger()


@dataclass
class ResolvedService:
    service_instance_id: UUID
    service_id: UUID
    service_name: str
    duration_minutes: int
    payer_specific: bool
    location: Optional[str] = None
    external_ids: Dict[str, str] = field(default_factory=dict)
    trace: Dict[str, Any] = field(default_factory=dict)


class ServiceCatalogResolver:
    """Staged service instance resolution"""

    def __init__(self, db: Session, integration_systems: Optional[List[str]] = None):
        self.db = db
        self.integration_systems = [s.lower() for s in (integration_systems or settings.get_billing_integration_systems())]
        self.logger = logger.bind(service="service_catalog")

    def resolve_bookable_service(
        self, payer_id, service_category: str, location: Optional[str] = None
    ) -> ResolvedService:
        """
        Resolve the bookable service instance for a payer.

        Args:
            payer_id: Payer identifier
            service_category: Case-insensitive substring of the service name (e.g. "intake")
            location: Optional delivery location filter (e.g. "telehealth")

        Returns:
            ResolvedService with duration and the per-stage trace

        Raises:
            NoBookableServiceForPayer: nothing survives the payer or mapping stage
            AmbiguousServiceInstance: more than one candidate in the preferred tier
            MissingDuration: the chosen instance has no usable duration
        """
        payer_id = parse_uuid(payer_id, "payer_id")
        if not service_category or not service_category.strip():
            raise ValueError("service_category is required")
        if self.db.get(Payer, payer_id) is None:
            raise UnknownEntity("Payer", payer_id)

        trace: Dict[str, Any] = {"payer_id": str(payer_id), "service_category": service_category}

        candidates = self._stage_category(service_category, location)
        trace["base"] = len(candidates)

        candidates = self._stage_payer_scope(candidates, payer_id)
        trace["payer_scoped"] = len(candidates)
        trace["payer_specific"] = sum(1 for c in candidates if c.payer_id == payer_id)
        trace["global"] = sum(1 for c in candidates if c.payer_id is None)
        if not candidates:
            self._fail_empty("payer_scope", trace)

        candidates = self._stage_mapped(candidates)
        trace["mapped"] = len(candidates)
        if not candidates:
            self._fail_empty("billing_mapping", trace)

        chosen = self._stage_prefer(candidates, payer_id, trace)

        duration = chosen.resolved_duration
        if duration is None or duration <= 0:
            raise MissingDuration(
                f"Service instance {chosen.id} has no duration",
                {"service_instance_id": str(chosen.id), **trace},
            )

        self.logger.info(
            "Bookable service resolved",
            service_instance_id=str(chosen.id),
            duration_minutes=duration,
            **trace,
        )
        return ResolvedService(
            service_instance_id=chosen.id,
            service_id=chosen.service_id,
            service_name=chosen.service.name,
            duration_minutes=duration,
            payer_specific=chosen.payer_id is not None,
            location=chosen.location,
            external_ids={i.system: i.external_id for i in chosen.integrations if i.external_id},
            trace=trace,
        )

    def get_duration(self, service_instance_id) -> int:
        service_instance_id = parse_uuid(service_instance_id, "service_instance_id")
        instance = self.db.query(ServiceInstance).options(joinedload(ServiceInstance.service)).filter(
            ServiceInstance.id == service_instance_id
        ).one_or_none()
        if instance is None:
            raise UnknownEntity("ServiceInstance", service_instance_id)
        duration = instance.resolved_duration
        if duration is None or duration <= 0:
            raise MissingDuration(f"Service instance {service_instance_id} has no duration",
                                  {"service_instance_id": str(service_instance_id)})
        return duration

    def _stage_category(self, service_category: str, location: Optional[str]) -> List[ServiceInstance]:
        needle = service_category.strip().lower()
        query = self.db.query(ServiceInstance).join(Service).options(
            joinedload(ServiceInstance.service), joinedload(ServiceInstance.integrations)
        )
        instances = query.all()
        matched = [i for i in instances if needle in (i.service.name or "").lower()]
        if location:
            matched = [i for i in matched if (i.location or "").lower() == location.lower()]
        return matched

    def _stage_payer_scope(self, candidates: List[ServiceInstance], payer_id: UUID) -> List[ServiceInstance]:
        return [c for c in candidates if c.payer_id is None or c.payer_id == payer_id]

    def _stage_mapped(self, candidates: List[ServiceInstance]) -> List[ServiceInstance]:
        return [
            c for c in candidates
            if any(i.system.lower() in self.integration_systems and i.external_id for i in c.integrations)
        ]

    def _stage_prefer(self, candidates: List[ServiceInstance], payer_id: UUID, trace: Dict[str, Any]) -> ServiceInstance:
        specific = [c for c in candidates if c.payer_id == payer_id]
        tier = specific or [c for c in candidates if c.payer_id is None]
        trace["tier"] = "payer_specific" if specific else "global"
        if len(tier) > 1:
            raise AmbiguousServiceInstance(
                f"{len(tier)} {trace['tier']} service instances match; expected exactly one",
                {"candidates": sorted(str(c.id) for c in tier), **trace},
            )
        return tier[0]

    def _fail_empty(self, stage: str, trace: Dict[str, Any]) -> None:
        self.logger.warning("No bookable service for payer", failed_stage=stage, **trace)
        raise NoBookableServiceForPayer(
            f"Booking unavailable: no {trace['service_category']} service for this payer",
            {"failed_stage": stage, **trace},
        )
