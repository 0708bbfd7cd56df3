"""Exception types raised by the duplicate detection and merge engine."""

from typing import Optional, Sequence


class LeadMergeError(Exception):
    """Base class for all engine errors."""

    retryable = False


class StoreError(LeadMergeError):
    """The record store failed to complete an operation."""

    retryable = True


class PolicyAlreadyConfigured(LeadMergeError):
    """A tenant's duplicate prevention policy was already set."""

    def __init__(self, tenant_id: str, current: str):
        self.tenant_id = tenant_id
        self.current = current
        super().__init__(
            f"Duplicate prevention is already configured for tenant {tenant_id} "
            f"({current}) and cannot be changed"
        )


class InvalidPolicy(LeadMergeError, ValueError):
    """A policy value is outside the allowed set."""


class RecordNotFound(LeadMergeError):
    """A lead id could not be resolved to exactly one record."""

    def __init__(self, lead_id: str, tenant_id: Optional[str] = None):
        self.lead_id = lead_id
        self.tenant_id = tenant_id
        super().__init__(f"Lead {lead_id} not found")


class SameRecordMerge(LeadMergeError):
    """Primary and secondary ids refer to the same record."""

    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Cannot merge lead {lead_id} into itself")


class DependentReassignmentFailed(LeadMergeError):
    """Repointing child records failed after the primary was updated.

    The primary already holds the merged values and no secondary has been
    deleted, so the merge can be retried.
    """

    retryable = True

    def __init__(self, primary_id: str, secondary_id: str, kind: str):
        self.primary_id = primary_id
        self.secondary_id = secondary_id
        self.kind = kind
        super().__init__(
            f"Failed to reassign {kind} from lead {secondary_id} to {primary_id}"
        )


class DeletionFailed(LeadMergeError):
    """Secondaries could not be deleted after a successful update.

    Leaves the group logically merged but not cleaned up.
    """

    def __init__(self, primary_id: str, secondary_ids: Sequence[str]):
        self.primary_id = primary_id
        self.secondary_ids = list(secondary_ids)
        super().__init__(
            f"Lead {primary_id} was updated but secondaries "
            f"{', '.join(self.secondary_ids)} could not be deleted"
        )


class ScanCancelled(LeadMergeError):
    """A scan was cancelled between passes."""


class ScanTimeout(LeadMergeError):
    """The similar-name pass exceeded its time limit."""

    def __init__(self, timeout: float, compared: int):
        self.timeout = timeout
        self.compared = compared
        super().__init__(
            f"Similar-name pass exceeded {timeout:.1f}s after {compared} records"
        )
