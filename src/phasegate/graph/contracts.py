from __future__ import annotations

from collections.abc import Iterator

import structlog

from phasegate.data.phase_types import Contract
from phasegate.errors import DuplicateContractError, UnknownContractError

logger = structlog.get_logger()


class ContractRegistry:
    """Maps contract name -> exposing phase within one subsystem.

    Names are immutable once registered: a second registration of the same
    name fails, whichever phase attempts it.
    """

    def __init__(self) -> None:
        self._contracts: dict[str, Contract] = {}

    def register(self, phase_id: str, contract_name: str, signature: str = "") -> Contract:
        existing = self._contracts.get(contract_name)
        if existing is not None:
            logger.debug(
                "registry.duplicate_contract",
                contract=contract_name,
                existing_phase=existing.phase_id,
                phase_id=phase_id,
            )
            raise DuplicateContractError(contract_name, existing.phase_id, phase_id)

        contract = Contract(name=contract_name, phase_id=phase_id, signature=signature)
        self._contracts[contract_name] = contract
        return contract

    def lookup(self, contract_name: str) -> Contract:
        contract = self._contracts.get(contract_name)
        if contract is None:
            raise UnknownContractError(contract_name)
        return contract

    def exposed_by(self, phase_id: str) -> list[Contract]:
        return [c for c in self._contracts.values() if c.phase_id == phase_id]

    def unregister(self, contract_name: str) -> Contract:
        contract = self.lookup(contract_name)
        del self._contracts[contract_name]
        return contract

    def unregister_phase(self, phase_id: str) -> list[Contract]:
        """Drops every contract owned by a phase; returns what was removed."""
        removed = self.exposed_by(phase_id)
        for c in removed:
            del self._contracts[c.name]
        return removed

    def names(self) -> list[str]:
        return sorted(self._contracts)

    def __contains__(self, contract_name: object) -> bool:
        return contract_name in self._contracts

    def __len__(self) -> int:
        return len(self._contracts)

    def __iter__(self) -> Iterator[Contract]:
        return iter(self._contracts.values())
