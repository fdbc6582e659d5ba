from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .types import ExportOutcome

OutcomeClassifier = Callable[[BaseException], ExportOutcome]


def default_outcome_classifier(exc: BaseException) -> ExportOutcome:
    """Map an exception escaping a transport to an outcome.

    Every failure is retryable. Permanent errors (e.g. rejected credentials)
    are not told apart from transient ones, so they spill too.
    """
    return ExportOutcome.TRANSIENT_FAILURE


@dataclass(frozen=True)
class DrainPolicy:
    """Lease and deadline settings shared by the inline and scheduled drains.

    Attributes:
        lease_ms: Lease taken when an item is checked out. Must cover
            ``redelivery_timeout_ms`` so the lease outlives the send it guards
        renewal_ms: Lease extension applied after a failed redelivery
        redelivery_timeout_ms: Deadline for each redelivery send
    """

    lease_ms: int = 3000
    renewal_ms: int = 1000
    redelivery_timeout_ms: int = 2000

    def __post_init__(self) -> None:
        if self.lease_ms <= 0:
            raise ValueError("lease_ms must be > 0")
        if self.renewal_ms <= 0:
            raise ValueError("renewal_ms must be > 0")
        if self.redelivery_timeout_ms <= 0:
            raise ValueError("redelivery_timeout_ms must be > 0")
        if self.lease_ms < self.redelivery_timeout_ms:
            raise ValueError(
                f"lease_ms ({self.lease_ms}) must be >= redelivery_timeout_ms "
                f"({self.redelivery_timeout_ms})"
            )

    @property
    def redelivery_timeout(self) -> float:
        return self.redelivery_timeout_ms / 1000
