"""Contract Store: direct provider-payer billing relationships"""

from datetime import date, timedelta
from typing import Callable, List, Optional

import structlog
from sqlalchemy.orm import Session

from care_scheduling.config import settings
from care_scheduling.errors import ContractOverlap, SchedulingError, UnknownEntity, parse_uuid
from care_scheduling.models import Contract, ContractStatus, Payer, Provider
from care_scheduling.services.effective_dates import covers, windows_overlap

logger = structlog.get_logger()


def refresh_bookability_hook(db: Session) -> Callable:
    """Default on_change hook: re-materialize the payer's snapshot after a write"""
    def _refresh(payer_id):
        if not settings.refresh_on_write:
            return
        from care_scheduling.services.bookability import BookabilityService
        BookabilityService(db).refresh(payer_id=payer_id)
    return _refresh


class ContractStore:
    """Holds contracts. Contracts are terminated, never deleted."""

    def __init__(self, db: Session, on_change: Optional[Callable] = None, credentialing=None):
        self.db = db
        self.on_change = on_change if on_change is not None else refresh_bookability_hook(db)
        self.credentialing = credentialing
        self.logger = logger.bind(service="contract_store")

    def get(self, contract_id) -> Contract:
        contract_id = parse_uuid(contract_id, "contract_id")
        contract = self.db.get(Contract, contract_id)
        if contract is None:
            raise UnknownEntity("Contract", contract_id)
        return contract

    def create_contract(
        self,
        provider_id,
        payer_id,
        status: str = ContractStatus.PENDING.value,
        effective_date: Optional[date] = None,
        termination_date: Optional[date] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Contract:
        """Create a contract; a pending contract kicks off credentialing when an engine is attached"""
        provider_id = parse_uuid(provider_id, "provider_id")
        payer_id = parse_uuid(payer_id, "payer_id")
        status = ContractStatus(status).value
        if self.db.get(Provider, provider_id) is None:
            raise UnknownEntity("Provider", provider_id)
        if self.db.get(Payer, payer_id) is None:
            raise UnknownEntity("Payer", payer_id)
        if effective_date and termination_date and termination_date <= effective_date:
            raise ValueError("termination_date must be after effective_date")

        contract = Contract(
            provider_id=provider_id,
            payer_id=payer_id,
            status=status,
            effective_date=effective_date,
            termination_date=termination_date,
            notes=notes,
        )
        if status == ContractStatus.ACTIVE.value:
            self._check_overlap(contract)

        self.db.add(contract)
        self.db.flush()

        if status == ContractStatus.PENDING.value and self.credentialing is not None:
            try:
                self.credentialing.instantiate_tasks(provider_id, payer_id, today=today or date.today(), commit=False)
            except SchedulingError:
                self.db.rollback()
                raise

        self.db.commit()
        self.logger.info(
            "Contract created",
            contract_id=str(contract.id),
            provider_id=str(provider_id),
            payer_id=str(payer_id),
            status=status,
            effective_date=effective_date,
        )
        self.on_change(payer_id)
        return contract

    def activate(self, contract_id, effective_date: Optional[date] = None) -> Contract:
        contract = self.get(contract_id)
        if effective_date is not None:
            contract.effective_date = effective_date
        if contract.effective_date is None:
            self.db.rollback()
            raise ValueError("An active contract needs an effective_date")
        try:
            with self.db.no_autoflush:
                self._check_overlap(contract)
        except ContractOverlap:
            self.db.rollback()
            raise
        contract.status = ContractStatus.ACTIVE.value
        self.db.commit()
        self.logger.info("Contract activated", contract_id=str(contract.id), payer_id=str(contract.payer_id),
                         effective_date=contract.effective_date)
        self.on_change(contract.payer_id)
        return contract

    def suspend(self, contract_id, as_of: Optional[date] = None) -> Contract:
        return self._deactivate(contract_id, ContractStatus.SUSPENDED, None, as_of or date.today())

    def terminate(self, contract_id, termination_date: Optional[date] = None) -> Contract:
        termination_date = termination_date or date.today()
        return self._deactivate(contract_id, ContractStatus.TERMINATED, termination_date, termination_date)

    def _deactivate(self, contract_id, status: ContractStatus, termination_date, as_of: date) -> Contract:
        contract = self.get(contract_id)
        contract.status = status.value
        if termination_date is not None:
            contract.termination_date = termination_date
        self.db.flush()

        provider = self.db.get(Provider, contract.provider_id)
        remaining = self._active_for_provider(contract.provider_id, as_of)
        if provider is not None and provider.is_bookable and not remaining:
            provider.is_bookable = False
            self.logger.info("Provider no longer bookable: no active contracts remain",
                             provider_id=str(provider.id))

        self.db.commit()
        self.logger.info(
            "Contract deactivated",
            contract_id=str(contract.id),
            payer_id=str(contract.payer_id),
            status=status.value,
            termination_date=termination_date,
        )
        self.on_change(contract.payer_id)
        return contract

    def active_contracts(self, payer_id, as_of: date) -> List[Contract]:
        """Active contracts in force on as_of, ordered by provider"""
        payer_id = parse_uuid(payer_id, "payer_id")
        rows = self.db.query(Contract).filter(
            Contract.payer_id == payer_id,
            Contract.status == ContractStatus.ACTIVE.value,
        ).order_by(Contract.provider_id, Contract.effective_date).all()
        return [c for c in rows if covers(c.effective_date, c.termination_date, as_of)]

    def contracts_for_pair(self, provider_id, payer_id) -> List[Contract]:
        return self.db.query(Contract).filter(
            Contract.provider_id == parse_uuid(provider_id, "provider_id"),
            Contract.payer_id == parse_uuid(payer_id, "payer_id"),
        ).order_by(Contract.created_at).all()

    def expiring_contracts(self, as_of: date, within_days: int) -> List[Contract]:
        """Active contracts whose termination date falls in (as_of, as_of + within_days]"""
        horizon = as_of + timedelta(days=within_days)
        return self.db.query(Contract).filter(
            Contract.status == ContractStatus.ACTIVE.value,
            Contract.termination_date.isnot(None),
            Contract.termination_date > as_of,
            Contract.termination_date <= horizon,
        ).order_by(Contract.termination_date).all()

    def _active_for_provider(self, provider_id, as_of: date) -> List[Contract]:
        rows = self.db.query(Contract).filter(
            Contract.provider_id == provider_id,
            Contract.status == ContractStatus.ACTIVE.value,
        ).all()
        return [c for c in rows if c.termination_date is None or c.termination_date > as_of]

    def _check_overlap(self, contract: Contract) -> None:
        others = self.db.query(Contract).filter(
            Contract.provider_id == contract.provider_id,
            Contract.payer_id == contract.payer_id,
            Contract.status == ContractStatus.ACTIVE.value,
        ).all()
        for other in others:
            if other.id is not None and other.id == contract.id:
                continue
            if windows_overlap(contract.effective_date, contract.termination_date,
                               other.effective_date, other.termination_date):
                raise ContractOverlap(
                    "Provider already has an active contract with this payer for an overlapping window",
                    {
                        "provider_id": str(contract.provider_id),
                        "payer_id": str(contract.payer_id),
                        "existing_contract_id": str(other.id),
                    },
                )
