# services/errors.py
"""
Exception taxonomy for the ledger and rewards services.

- Validation errors (InvalidPayload, UnknownMaterialType, InvalidWeight,
  InvalidStageTransition) are caller bugs: surfaced as 4xx, never retried.
- Storage errors (StorageUnavailable, ConcurrentModification) are transient:
  retry the whole operation, keyed on the originating collection event.
- Integrity findings are not exceptions; validate/verify_chain return them.
"""


class LedgerError(Exception):
     """Base exception for ledger failures."""


class InvalidPayload(LedgerError, ValueError):
     """A ledger payload is missing a required field or has a malformed one."""


class MiningTimeout(LedgerError):
     """The nonce search exceeded its iteration budget."""

     def __init__(self, attempts: int, difficulty: int) -> None:
          super().__init__(f"No nonce found after {attempts} attempts at difficulty {difficulty}")
          self.attempts = attempts
          self.difficulty = difficulty


class MiningCancelled(LedgerError):
     """The nonce search was abandoned on request. Nothing was written."""


class RewardsError(Exception):
     """Base exception for rewards failures."""


class UnknownMaterialType(RewardsError, ValueError):
     def __init__(self, material_type: str) -> None:
          super().__init__(f"Unknown material type: {material_type!r}")
          self.material_type = material_type


class InvalidWeight(RewardsError, ValueError):
     def __init__(self, weight) -> None:
          super().__init__(f"Weight must be positive, got {weight!r}")
          self.weight = weight


class InvalidStageTransition(ValueError):
     """A tracking event does not follow the collection's stage progression."""


class StorageError(Exception):
     """Base exception for record store failures."""


class StorageUnavailable(StorageError):
     """The record store could not be reached or failed mid-operation."""


class ConcurrentModification(StorageError):
     """A compare-and-append or unique-key check lost a race with another writer."""
