"""Tests for staged service instance resolution"""

import uuid
import pytest

from care_scheduling.errors import (
    AmbiguousServiceInstance, InvalidIdentifier, MissingDuration, NoBookableServiceForPayer, UnknownEntity
)
from care_scheduling.services.service_catalog import ServiceCatalogResolver


class TestServiceCatalogResolver:

    def test_global_instance_resolves(self, db_session, factory):
        payer = factory.payer()
        instance = factory.service_instance(duration=60)

        resolved = ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")

        assert resolved.service_instance_id == instance.id
        assert resolved.duration_minutes == 60
        assert resolved.payer_specific is False
        assert resolved.trace["base"] == 1
        assert resolved.trace["mapped"] == 1

    def test_category_match_is_case_insensitive_substring(self, db_session, factory):
        payer = factory.payer()
        factory.service_instance(name="NEW PATIENT INTAKE (Telehealth)")

        resolved = ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "Intake")
        assert resolved.service_name == "NEW PATIENT INTAKE (Telehealth)"

    def test_payer_specific_preferred_over_global(self, db_session, factory):
        payer = factory.payer()
        factory.service_instance(duration=60)
        specific = factory.service_instance(duration=45, payer=payer)

        resolved = ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")

        assert resolved.service_instance_id == specific.id
        assert resolved.duration_minutes == 45
        assert resolved.payer_specific is True

    def test_other_payers_instances_ignored(self, db_session, factory):
        payer = factory.payer()
        other = factory.payer(name="Other Plan")
        factory.service_instance(payer=other)

        with pytest.raises(NoBookableServiceForPayer) as exc_info:
            ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")
        assert exc_info.value.details["failed_stage"] == "payer_scope"
        assert exc_info.value.details["base"] == 1
        assert exc_info.value.details["payer_scoped"] == 0

    def test_unmapped_instance_not_bookable(self, db_session, factory):
        payer = factory.payer()
        factory.service_instance(systems=("some_other_ehr",))

        with pytest.raises(NoBookableServiceForPayer) as exc_info:
            ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")
        assert exc_info.value.details["failed_stage"] == "billing_mapping"
        assert exc_info.value.details["payer_scoped"] == 1

    def test_mapped_global_wins_when_specific_unmapped(self, db_session, factory):
        payer = factory.payer()
        mapped_global = factory.service_instance()
        factory.service_instance(payer=payer, systems=())

        resolved = ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")
        assert resolved.service_instance_id == mapped_global.id

    def test_ambiguity_is_an_error(self, db_session, factory):
        payer = factory.payer()
        factory.service_instance(payer=payer)
        factory.service_instance(name="Intake Follow-up", payer=payer)

        with pytest.raises(AmbiguousServiceInstance) as exc_info:
            ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")
        assert len(exc_info.value.details["candidates"]) == 2

    def test_location_filter_disambiguates(self, db_session, factory):
        payer = factory.payer()
        factory.service_instance(payer=payer, location="telehealth")
        in_person = factory.service_instance(payer=payer, location="in_person")

        resolved = ServiceCatalogResolver(db_session).resolve_bookable_service(
            payer.id, "intake", location="in_person")
        assert resolved.service_instance_id == in_person.id

    def test_missing_duration(self, db_session, factory):
        payer = factory.payer()
        factory.service_instance(duration=None)

        with pytest.raises(MissingDuration):
            ServiceCatalogResolver(db_session).resolve_bookable_service(payer.id, "intake")

    def test_instance_duration_overrides_service(self, db_session, factory):
        payer = factory.payer()
        instance = factory.service_instance(duration=None, instance_duration=50)

        resolver = ServiceCatalogResolver(db_session)
        assert resolver.resolve_bookable_service(payer.id, "intake").duration_minutes == 50
        assert resolver.get_duration(instance.id) == 50

    def test_get_duration_unknown_instance(self, db_session):
        with pytest.raises(UnknownEntity):
            ServiceCatalogResolver(db_session).get_duration(uuid.uuid4())

    def test_malformed_payer_id(self, db_session):
        with pytest.raises(InvalidIdentifier):
            ServiceCatalogResolver(db_session).resolve_bookable_service("not-a-uuid", "intake")

    def test_integration_systems_configurable(self, db_session, factory):
        payer = factory.payer()
        instance = factory.service_instance(systems=("athena",))

        resolver = ServiceCatalogResolver(db_session, integration_systems=["athena"])
        assert resolver.resolve_bookable_service(payer.id, "intake").service_instance_id == instance.id
