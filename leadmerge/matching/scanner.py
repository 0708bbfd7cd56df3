"""
Batch duplicate discovery.

Partitions a tenant's leads into duplicate groups using four strategies in
strict precedence order:

1. Exact email (case-folded, trimmed)
2. Exact normalized phone (at least ``min_phone_digits`` digits)
3. Similar full names (greedy clustering, O(n^2))
4. Same full name and program of interest

Leads grouped by an earlier strategy are removed from the pool of later
ones. Strategy 4 runs over the same pool as strategy 3, so a lead can
appear in both a similar-name and a name+program group, and in several
name+program groups when it lists several programs.
"""

import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from ..config import DetectionConfig, default_config
from ..core.lead import Lead
from ..errors import ScanCancelled, StoreError
from ..store.base import RecordStore
from ..utils.normalizer import full_name_key, normalize_email, normalize_phone
from .clustering import GreedyNameClusterer, NameClusterer
from .groups import DuplicateGroup, MatchType

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked between scan passes."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class DuplicateScanner:
    """Finds duplicate groups across a tenant's whole lead population."""

    def __init__(
        self,
        store: RecordStore,
        config: DetectionConfig = default_config,
        clusterer: Optional[NameClusterer] = None,
        fail_open: bool = False
    ):
        """
        Initialize the scanner.

        Args:
            store: Record store to read leads from
            config: Thresholds, confidences and the similar-name timeout
            clusterer: Similar-name strategy (greedy pairwise by default)
            fail_open: Return no groups instead of raising when the store fails
        """
        self.store = store
        self.config = config
        self.clusterer = clusterer or GreedyNameClusterer(config.name_similarity_threshold)
        self.fail_open = fail_open

    def scan_all(
        self,
        tenant_id: str,
        cancel: Optional[CancellationToken] = None,
        fail_open: Optional[bool] = None
    ) -> List[DuplicateGroup]:
        """
        Run all four strategies over the tenant's leads.

        Args:
            tenant_id: Tenant to scan
            cancel: Token checked between passes
            fail_open: Override the scanner's fail-open setting

        Returns:
            Duplicate groups in strategy order

        Raises:
            ScanCancelled: ``cancel`` was set before a pass started
            ScanTimeout: The similar-name pass exceeded its time limit
        """
        leads = self._load(tenant_id, fail_open)
        if leads is None:
            return []

        groups: List[DuplicateGroup] = []
        grouped = set()

        def remaining() -> List[Lead]:
            return [lead for lead in leads if lead.id not in grouped]

        self._checkpoint(cancel, tenant_id, 'exact email')
        for group in self._email_groups(tenant_id, leads, 'email'):
            groups.append(group)
            grouped.update(group.lead_ids)

        self._checkpoint(cancel, tenant_id, 'exact phone')
        for group in self._phone_groups(tenant_id, remaining(), 'phone',
                                        self.config.exact_phone_confidence):
            groups.append(group)
            grouped.update(group.lead_ids)

        unprocessed = remaining()

        self._checkpoint(cancel, tenant_id, 'similar name')
        groups.extend(self._similar_name_groups(tenant_id, unprocessed))

        self._checkpoint(cancel, tenant_id, 'name and program')
        groups.extend(self._name_program_groups(tenant_id, unprocessed))

        logger.info(f"Scan of tenant {tenant_id}: {len(leads)} leads, {len(groups)} groups")
        return groups

    def scan_exact(
        self,
        tenant_id: str,
        cancel: Optional[CancellationToken] = None,
        fail_open: Optional[bool] = None
    ) -> List[DuplicateGroup]:
        """
        Find only violations of the tenant's configured prevention policy.

        Runs the exact email and/or exact phone strategies depending on the
        policy; returns nothing when the tenant has no policy.
        """
        try:
            policy = self.store.get_tenant_config(tenant_id).duplicate_prevention_field
        except StoreError as e:
            if not self._fail_open(fail_open):
                raise
            logger.warning(f"Exact scan of tenant {tenant_id} failed, reporting none: {e}")
            return []

        if not (policy.checks_email or policy.checks_phone):
            return []

        leads = self._load(tenant_id, fail_open)
        if leads is None:
            return []

        groups: List[DuplicateGroup] = []
        grouped = set()

        if policy.checks_email:
            self._checkpoint(cancel, tenant_id, 'exact email')
            for group in self._email_groups(tenant_id, leads, 'exact_email'):
                groups.append(group)
                grouped.update(group.lead_ids)

        if policy.checks_phone:
            self._checkpoint(cancel, tenant_id, 'exact phone')
            pool = [lead for lead in leads if lead.id not in grouped]
            groups.extend(self._phone_groups(tenant_id, pool, 'exact_phone',
                                             self.config.exact_phone_confidence))

        logger.info(
            f"Exact scan of tenant {tenant_id} ({policy.value}): {len(groups)} groups"
        )
        return groups

    # ========== Strategies ==========

    def _email_groups(self, tenant_id: str, leads: List[Lead], prefix: str) -> List[DuplicateGroup]:
        return self._partition_groups(
            tenant_id, leads, lambda lead: normalize_email(lead.email), prefix,
            MatchType.EXACT_EMAIL, self.config.exact_email_confidence
        )

    def _phone_groups(
        self,
        tenant_id: str,
        leads: List[Lead],
        prefix: str,
        confidence: int
    ) -> List[DuplicateGroup]:
        def phone_key(lead: Lead) -> str:
            normalized = normalize_phone(lead.phone, self.config.phone_digits)
            # Short digit strings are noise, not a match key
            return normalized if len(normalized) >= self.config.min_phone_digits else ''

        return self._partition_groups(
            tenant_id, leads, phone_key, prefix, MatchType.EXACT_PHONE, confidence
        )

    def _similar_name_groups(self, tenant_id: str, leads: List[Lead]) -> List[DuplicateGroup]:
        clusters = self.clusterer.cluster(leads, timeout=self.config.similar_name_timeout)
        return [
            DuplicateGroup(
                id=f"similar_name_{members[0].id}",
                tenant_id=tenant_id,
                match_type=MatchType.SIMILAR_NAME,
                confidence=self.config.similar_name_confidence,
                leads=members,
            )
            for members in clusters
        ]

    def _name_program_groups(self, tenant_id: str, leads: List[Lead]) -> List[DuplicateGroup]:
        key_map: Dict[str, Dict[str, Lead]] = defaultdict(dict)

        for lead in leads:
            name = full_name_key(lead.first_name, lead.last_name)
            if not name:
                continue
            for program in lead.program_interest:
                program_key = program.strip().lower()
                if program_key:
                    key_map[f"{name}|{program_key}"].setdefault(lead.id, lead)

        return [
            DuplicateGroup(
                id=f"name_program_{key}",
                tenant_id=tenant_id,
                match_type=MatchType.NAME_PROGRAM,
                confidence=self.config.name_program_confidence,
                leads=list(members.values()),
            )
            for key, members in key_map.items()
            if len(members) > 1
        ]

    @staticmethod
    def _partition_groups(
        tenant_id: str,
        leads: List[Lead],
        key: Callable[[Lead], str],
        prefix: str,
        match_type: MatchType,
        confidence: int
    ) -> List[DuplicateGroup]:
        """Group leads sharing a non-empty key; keys keep first-seen order."""
        partitions: Dict[str, List[Lead]] = defaultdict(list)
        for lead in leads:
            value = key(lead)
            if value:
                partitions[value].append(lead)

        return [
            DuplicateGroup(
                id=f"{prefix}_{value}",
                tenant_id=tenant_id,
                match_type=match_type,
                confidence=confidence,
                leads=members,
            )
            for value, members in partitions.items()
            if len(members) > 1
        ]

    # ========== Helpers ==========

    def _fail_open(self, override: Optional[bool]) -> bool:
        return self.fail_open if override is None else override

    def _load(self, tenant_id: str, fail_open: Optional[bool]) -> Optional[List[Lead]]:
        """All leads of the tenant oldest first, or None when failing open."""
        try:
            return self.store.find(tenant_id)
        except StoreError as e:
            if not self._fail_open(fail_open):
                raise
            logger.warning(f"Scan of tenant {tenant_id} failed, reporting no duplicates: {e}")
            return None

    @staticmethod
    def _checkpoint(cancel: Optional[CancellationToken], tenant_id: str, stage: str) -> None:
        if cancel is not None and cancel.cancelled:
            logger.warning(f"Scan of tenant {tenant_id} cancelled before {stage} pass")
            raise ScanCancelled(f"Scan of tenant {tenant_id} cancelled before {stage} pass")
