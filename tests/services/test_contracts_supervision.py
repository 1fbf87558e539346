"""Tests for the contract store and the supervision graph"""

import pytest
from datetime import date

from care_scheduling.config import settings
from care_scheduling.errors import (
    ContractOverlap, MissingCredentialingTemplate, SupervisionConflict, UnknownEntity
)
from care_scheduling.models import BookabilitySnapshot, Contract, CredentialingTask
from care_scheduling.services.contracts import ContractStore
from care_scheduling.services.credentialing import CredentialingEngine
from care_scheduling.services.supervision import SupervisionGraph


def recording_store(db, **kwargs):
    changes = []
    return ContractStore(db, on_change=changes.append, **kwargs), changes


class TestContractStore:

    def test_create_notifies_on_change(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        store, changes = recording_store(db_session)

        contract = store.create_contract(provider.id, payer.id, status="active", effective_date=date(2025, 1, 1))

        assert contract.status == "active"
        assert changes == [payer.id]

    def test_overlapping_active_contracts_rejected(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        store, _ = recording_store(db_session)
        store.create_contract(provider.id, payer.id, status="active",
                              effective_date=date(2025, 1, 1), termination_date=date(2025, 7, 1))

        with pytest.raises(ContractOverlap):
            store.create_contract(provider.id, payer.id, status="active", effective_date=date(2025, 6, 1))

    def test_back_to_back_windows_allowed(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        store, _ = recording_store(db_session)
        store.create_contract(provider.id, payer.id, status="active",
                              effective_date=date(2025, 1, 1), termination_date=date(2025, 7, 1))
        store.create_contract(provider.id, payer.id, status="active", effective_date=date(2025, 7, 1))

        assert len(store.contracts_for_pair(provider.id, payer.id)) == 2

    def test_activate_checks_overlap(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        store, _ = recording_store(db_session)
        store.create_contract(provider.id, payer.id, status="active", effective_date=date(2025, 1, 1))
        pending = store.create_contract(provider.id, payer.id, status="pending")

        with pytest.raises(ContractOverlap):
            store.activate(pending.id, effective_date=date(2025, 3, 1))

    def test_rejected_activation_leaves_pending_contract_unchanged(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        store, changes = recording_store(db_session)
        existing = store.create_contract(provider.id, payer.id, status="active", effective_date=date(2025, 1, 1))
        pending = store.create_contract(provider.id, payer.id, status="pending")

        with pytest.raises(ContractOverlap):
            store.activate(pending.id, effective_date=date(2025, 3, 1))
        db_session.commit()

        active = db_session.query(Contract).filter(
            Contract.provider_id == provider.id,
            Contract.payer_id == payer.id,
            Contract.status == "active",
        ).all()
        assert [c.id for c in active] == [existing.id]
        db_session.refresh(pending)
        assert pending.status == "pending"
        assert pending.effective_date is None
        assert changes == [payer.id, payer.id]

    def test_active_contracts_respects_window(self, db_session, factory):
        payer = factory.payer()
        current = factory.contract(factory.provider(), payer, effective_date=date(2025, 1, 1))
        factory.contract(factory.provider(), payer, effective_date=date(2025, 9, 1))
        factory.contract(factory.provider(), payer, effective_date=date(2024, 1, 1),
                         termination_date=date(2025, 6, 1))
        factory.contract(factory.provider(), payer, status="pending", effective_date=date(2025, 1, 1))

        store, _ = recording_store(db_session)
        active = store.active_contracts(payer.id, date(2025, 6, 1))

        assert [c.id for c in active] == [current.id]

    def test_terminate_last_contract_clears_is_bookable(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        contract = factory.contract(provider, payer)
        store, changes = recording_store(db_session)

        store.terminate(contract.id, termination_date=date(2025, 5, 1))

        db_session.refresh(provider)
        assert contract.status == "terminated"
        assert contract.termination_date == date(2025, 5, 1)
        assert provider.is_bookable is False
        assert changes == [payer.id]

    def test_suspend_keeps_is_bookable_with_other_contracts(self, db_session, factory):
        provider = factory.provider()
        payer_a, payer_b = factory.payer(), factory.payer(name="Second Plan")
        contract = factory.contract(provider, payer_a)
        factory.contract(provider, payer_b)
        store, _ = recording_store(db_session)

        store.suspend(contract.id, as_of=date(2025, 5, 1))

        db_session.refresh(provider)
        assert provider.is_bookable is True

    def test_contracts_are_never_deleted(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        contract = factory.contract(provider, payer)
        store, _ = recording_store(db_session)
        store.terminate(contract.id, termination_date=date(2025, 5, 1))

        assert db_session.query(Contract).count() == 1

    def test_expiring_contracts(self, db_session, factory):
        payer = factory.payer()
        soon = factory.contract(factory.provider(), payer, termination_date=date(2025, 6, 20))
        factory.contract(factory.provider(), payer, termination_date=date(2025, 8, 15))
        factory.contract(factory.provider(), payer, termination_date=date(2025, 9, 1))
        store, _ = recording_store(db_session)

        assert [c.id for c in store.expiring_contracts(date(2025, 6, 1), 30)] == [soon.id]
        assert len(store.expiring_contracts(date(2025, 6, 1), 90)) == 2

    def test_unknown_provider(self, db_session, factory):
        import uuid
        store, _ = recording_store(db_session)
        with pytest.raises(UnknownEntity):
            store.create_contract(uuid.uuid4(), factory.payer().id)

    def test_pending_contract_instantiates_credentialing(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        factory.workflow(payer, [{"title": "Submit CAQH", "order": 1}, {"title": "Sign agreement", "order": 2}])
        store, _ = recording_store(db_session, credentialing=CredentialingEngine(db_session))

        store.create_contract(provider.id, payer.id, status="pending", today=date(2025, 5, 1))

        assert db_session.query(CredentialingTask).count() == 2

    def test_pending_contract_without_template_rolls_back(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        store, changes = recording_store(db_session, credentialing=CredentialingEngine(db_session))

        with pytest.raises(MissingCredentialingTemplate):
            store.create_contract(provider.id, payer.id, status="pending")

        assert db_session.query(Contract).count() == 0
        assert changes == []

    def test_default_hook_refreshes_when_enabled(self, db_session, factory, monkeypatch):
        monkeypatch.setattr(settings, "refresh_on_write", True)
        provider, payer = factory.provider(), factory.payer()

        ContractStore(db_session).create_contract(provider.id, payer.id, status="active",
                                                  effective_date=date(2024, 1, 1))

        snapshot = db_session.query(BookabilitySnapshot).filter_by(payer_id=payer.id, is_current=True).one()
        assert snapshot.entry_count == 1


class TestSupervisionGraph:

    def graph(self, db):
        return SupervisionGraph(db, on_change=lambda payer_id: None)

    def test_add_and_query_active(self, db_session, factory):
        resident, attending, payer = factory.provider(role="resident"), factory.provider(), factory.payer()
        graph = self.graph(db_session)
        rel = graph.add_relationship(resident.id, attending.id, payer.id, effective_date=date(2025, 1, 1),
                                     supervision_level="co_visit_required")

        assert rel.requires_co_visit is True
        assert graph.active_relationships(payer.id, date(2025, 2, 1)) == [rel]
        assert graph.active_relationships(payer.id, date(2024, 12, 31)) == []
        assert graph.primary_supervisor(resident.id, payer.id, date(2025, 2, 1)) is rel

    def test_self_supervision_rejected(self, db_session, factory):
        provider, payer = factory.provider(), factory.payer()
        with pytest.raises(SupervisionConflict):
            self.graph(db_session).add_relationship(provider.id, provider.id, payer.id, date(2025, 1, 1))

    def test_second_overlapping_primary_rejected(self, db_session, factory):
        resident, payer = factory.provider(), factory.payer()
        first, second = factory.provider(), factory.provider()
        graph = self.graph(db_session)
        graph.add_relationship(resident.id, first.id, payer.id, date(2025, 1, 1))

        with pytest.raises(SupervisionConflict):
            graph.add_relationship(resident.id, second.id, payer.id, date(2025, 3, 1))

    def test_secondary_and_sequential_primaries_allowed(self, db_session, factory):
        resident, payer = factory.provider(), factory.payer()
        first, second, third = factory.provider(), factory.provider(), factory.provider()
        graph = self.graph(db_session)
        graph.add_relationship(resident.id, first.id, payer.id, date(2025, 1, 1), expiration_date=date(2025, 6, 1))
        graph.add_relationship(resident.id, second.id, payer.id, date(2025, 6, 1))
        graph.add_relationship(resident.id, third.id, payer.id, date(2025, 1, 1), designation="secondary")

        assert graph.primary_supervisor(resident.id, payer.id, date(2025, 7, 1)).supervisor_id == second.id

    def test_end_relationship(self, db_session, factory):
        resident, attending, payer = factory.provider(), factory.provider(), factory.payer()
        changes = []
        graph = SupervisionGraph(db_session, on_change=changes.append)
        rel = graph.add_relationship(resident.id, attending.id, payer.id, date(2025, 1, 1))

        graph.end_relationship(rel.id, date(2025, 4, 1))

        assert graph.active_relationships(payer.id, date(2025, 4, 1)) == []
        assert changes == [payer.id, payer.id]

    def test_invalid_level_rejected(self, db_session, factory):
        resident, attending, payer = factory.provider(), factory.provider(), factory.payer()
        with pytest.raises(ValueError):
            self.graph(db_session).add_relationship(resident.id, attending.id, payer.id, date(2025, 1, 1),
                                                    supervision_level="remote_only")
