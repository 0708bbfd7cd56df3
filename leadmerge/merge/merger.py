"""
Duplicate lead merger.

Merges a duplicate group into its surviving (primary) lead, repoints the
secondaries' documents and deletes the secondaries.
"""

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..config import DetectionConfig, default_config
from ..core.lead import Lead
from ..errors import (
    DeletionFailed,
    DependentReassignmentFailed,
    LeadMergeError,
    RecordNotFound,
    SameRecordMerge,
    StoreError,
)
from ..matching.groups import DuplicateGroup, are_disjoint
from ..store.base import DOCUMENTS, LeadFilter, RecordStore
from ..utils.audit_trail import MergeAuditTrail
from .conflict_resolver import ConflictResolution, ConflictResolutionPolicy, ConflictResolver, MergeRule
from .locks import TenantLockRegistry, default_locks

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Result of a merge operation."""
    success: bool
    merged_lead_id: Optional[str]
    removed_lead_ids: List[str]
    conflicts_resolved: List[ConflictResolution]
    documents_moved: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Human-readable result."""
        return (
            f"Merged {len(self.removed_lead_ids)} lead(s) into {self.merged_lead_id}\n"
            f"  Fields changed: {len(self.conflicts_resolved)}\n"
            f"  Documents moved: {self.documents_moved}"
        )


@dataclass
class BulkMergeResult:
    """Aggregate outcome of merging several groups."""
    success_count: int = 0
    failed_count: int = 0
    results: List[MergeResult] = field(default_factory=list)
    failures: List[Tuple[str, Exception]] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.success_count} merged, {self.failed_count} failed"


class LeadMerger:
    """
    Merges duplicate leads.

    Merge Process:
    1. Re-read all members from the store under the tenant lock
    2. Resolve field conflicts into the merged primary
    3. Update the primary
    4. Repoint documents from secondaries to the primary (documents=merge_all)
    5. Delete the secondaries

    Steps 3-5 run in this order so that a failure never deletes a secondary
    whose data has not reached the primary.
    """

    def __init__(
        self,
        store: RecordStore,
        config: DetectionConfig = default_config,
        locks: Optional[TenantLockRegistry] = None,
        audit: Optional[MergeAuditTrail] = None
    ):
        """
        Initialize the merger.

        Args:
            store: Record store holding the leads
            config: Notes separator and bulk worker count
            locks: Per-tenant locks (defaults to the process-wide registry)
            audit: Optional audit trail recording every merge
        """
        self.store = store
        self.config = config
        self.locks = locks or default_locks
        self.audit = audit

    def merge_two(self, tenant_id: str, primary_id: str, secondary_id: str) -> MergeResult:
        """
        Merge one lead into another with the fixed two-lead rules.

        Fills the primary's blank phone/country/state/city, unions programs and
        tags, keeps the higher lead score, annotates the notes, moves the
        secondary's documents to the primary and deletes the secondary.

        Raises:
            SameRecordMerge: Both ids are the same lead
            RecordNotFound: Either id does not resolve to exactly one lead
            DependentReassignmentFailed: Documents could not be repointed
        """
        if primary_id == secondary_id:
            raise SameRecordMerge(primary_id)

        with self.locks.hold(tenant_id):
            primary, secondaries = self._load_members(tenant_id, primary_id, [secondary_id])
            merged_at = datetime.now(timezone.utc)
            merged, resolutions = ConflictResolver.resolve_pair(
                primary, secondaries[0], merged_at
            )
            return self._apply(tenant_id, merged, secondaries, resolutions,
                               reassign_documents=True, operation='merge_two')

    def merge_group(
        self,
        group: DuplicateGroup,
        policy: Optional[ConflictResolutionPolicy] = None
    ) -> MergeResult:
        """
        Merge every member of a group into its primary lead.

        Args:
            group: Group to merge; ``primary_lead_id`` survives
            policy: Field-level conflict resolution (defaults when omitted)

        Raises:
            RecordNotFound: A member no longer exists (e.g. merged concurrently)
            DependentReassignmentFailed: Documents could not be repointed;
                the primary is updated and no secondary was deleted
            DeletionFailed: Secondaries could not be deleted after the update
        """
        policy = policy or ConflictResolutionPolicy()
        with self.locks.hold(group.tenant_id):
            primary, secondaries = self._load_members(
                group.tenant_id, group.primary_lead_id,
                [lead.id for lead in group.secondaries]
            )
            resolver = ConflictResolver(policy, self.config.notes_separator)
            merged, resolutions = resolver.resolve(primary, secondaries)
            return self._apply(
                group.tenant_id, merged, secondaries, resolutions,
                reassign_documents=policy.documents is MergeRule.MERGE_ALL,
                operation='merge_group',
                details={'group_id': group.id, 'match_type': group.match_type.value},
            )

    def preview_merge(
        self,
        group: DuplicateGroup,
        policy: Optional[ConflictResolutionPolicy] = None
    ) -> Tuple[Lead, List[ConflictResolution]]:
        """Compute the merged primary from the group's leads without writing."""
        resolver = ConflictResolver(policy, self.config.notes_separator)
        return resolver.resolve(group.primary, group.secondaries)

    def bulk_merge_groups(
        self,
        groups: List[DuplicateGroup],
        policy: Optional[ConflictResolutionPolicy] = None,
        max_workers: Optional[int] = None
    ) -> BulkMergeResult:
        """
        Merge groups independently; one failure does not stop the others.

        Groups run in parallel only when ``max_workers`` > 1 and no lead
        appears in more than one group; otherwise they run in order.
        """
        max_workers = max_workers or self.config.bulk_merge_workers
        outcome = BulkMergeResult()

        def run(group: DuplicateGroup):
            try:
                return group, self.merge_group(group, policy), None
            except Exception as e:
                logger.error(f"Merge of group {group.id} failed: {e}", exc_info=True)
                return group, None, e

        if max_workers > 1 and len(groups) > 1 and are_disjoint(groups):
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(run, groups))
        else:
            if max_workers > 1 and not are_disjoint(groups):
                logger.info("Groups share leads, merging sequentially")
            outcomes = [run(group) for group in groups]

        for group, result, error in outcomes:
            if error is None:
                outcome.success_count += 1
                outcome.results.append(result)
            else:
                outcome.failed_count += 1
                outcome.failures.append((group.id, error))

        logger.info(f"Bulk merge: {outcome}")
        return outcome

    def delete_duplicates(self, tenant_id: str, lead_ids: List[str]) -> Dict[str, int]:
        """
        Delete leads one by one without merging.

        Returns:
            {'success': deleted count, 'failed': failure count}
        """
        success = 0
        failed = 0
        with self.locks.hold(tenant_id):
            for lead_id in lead_ids:
                try:
                    if self.store.get(tenant_id, lead_id) is None:
                        raise RecordNotFound(lead_id, tenant_id)
                    self.store.delete(lead_id)
                    success += 1
                except LeadMergeError as e:
                    logger.error(f"Could not delete lead {lead_id}: {e}")
                    failed += 1
        logger.info(f"Deleted {success} duplicate lead(s), {failed} failed")
        return {'success': success, 'failed': failed}

    # ========== Helpers ==========

    def _load_members(
        self,
        tenant_id: str,
        primary_id: str,
        secondary_ids: List[str]
    ) -> Tuple[Lead, List[Lead]]:
        """Fetch current copies of the primary and secondaries, in order."""
        ids = [primary_id] + secondary_ids
        found = {lead.id: lead for lead in self.store.find(tenant_id, LeadFilter(ids=ids))}
        for lead_id in ids:
            if lead_id not in found:
                raise RecordNotFound(lead_id, tenant_id)
        return found[primary_id], [found[lead_id] for lead_id in secondary_ids]

    def _apply(
        self,
        tenant_id: str,
        merged: Lead,
        secondaries: List[Lead],
        resolutions: List[ConflictResolution],
        reassign_documents: bool,
        operation: str,
        details: Optional[Dict[str, Any]] = None
    ) -> MergeResult:
        """Update, reassign, then delete."""
        primary_id = merged.id
        secondary_ids = [lead.id for lead in secondaries]

        if resolutions:
            self.store.insert_or_update(merged)

        moved = 0
        if reassign_documents:
            for secondary_id in secondary_ids:
                try:
                    moved += self.store.reassign_dependents(secondary_id, primary_id, DOCUMENTS)
                except StoreError as e:
                    raise DependentReassignmentFailed(primary_id, secondary_id, DOCUMENTS) from e

        deleted = []
        try:
            for secondary_id in secondary_ids:
                self.store.delete(secondary_id)
                deleted.append(secondary_id)
        except LeadMergeError as e:
            remaining = [i for i in secondary_ids if i not in deleted]
            logger.critical(
                f"Lead {primary_id} in tenant {tenant_id} was merged but "
                f"{', '.join(remaining)} could not be deleted: {e}"
            )
            raise DeletionFailed(primary_id, remaining) from e

        result = MergeResult(
            success=True,
            merged_lead_id=primary_id,
            removed_lead_ids=deleted,
            conflicts_resolved=resolutions,
            documents_moved=moved,
            details=dict(details or {}, operation=operation),
        )
        if self.audit is not None:
            try:
                self.audit.record_merge(tenant_id, result)
            except sqlite3.Error as e:
                logger.error(f"Merge into {primary_id} completed but was not audited: {e}")

        logger.info(
            f"Merged {len(deleted)} lead(s) into {primary_id} in tenant {tenant_id} "
            f"({len(resolutions)} fields changed, {moved} documents moved)"
        )
        return result
