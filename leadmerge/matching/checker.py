"""
Intake-time duplicate check.

Answers whether a lead about to be created duplicates an existing one under
the tenant's configured prevention policy. Read-only and cheap: at most one
store query, and none when the tenant has no policy.
"""

import logging
from typing import Optional

from ..core.tenant import PreventionField
from ..errors import StoreError
from ..store.base import LeadFilter, RecordStore
from ..utils.normalizer import normalize_email, normalize_phone
from .groups import DuplicateCheckResult

logger = logging.getLogger(__name__)


class DuplicateChecker:
    """
    Checks candidate leads against a tenant's duplicate prevention policy.

    Policies:
    - none: never a duplicate, no query issued
    - email: case-insensitive exact email match
    - phone: stored normalized phone contains the candidate's normalized phone
    - both: email OR phone
    """

    def __init__(self, store: RecordStore, fail_open: bool = False):
        """
        Initialize the checker.

        Args:
            store: Record store to query
            fail_open: Report "not a duplicate" instead of raising when the
                store fails
        """
        self.store = store
        self.fail_open = fail_open

    def check(
        self,
        email: Optional[str],
        phone: Optional[str],
        tenant_id: str,
        fail_open: Optional[bool] = None
    ) -> DuplicateCheckResult:
        """
        Check whether a new lead would duplicate an existing one.

        Args:
            email: Candidate email
            phone: Candidate phone (optional)
            tenant_id: Tenant the lead belongs to
            fail_open: Override the checker's fail-open setting

        Returns:
            DuplicateCheckResult with the first matching lead, if any
        """
        fail_open = self.fail_open if fail_open is None else fail_open
        try:
            return self._check(email, phone, tenant_id)
        except StoreError as e:
            if not fail_open:
                raise
            logger.warning(f"Duplicate check failed for tenant {tenant_id}, allowing lead: {e}")
            return DuplicateCheckResult(is_duplicate=False)

    def _check(
        self,
        email: Optional[str],
        phone: Optional[str],
        tenant_id: str
    ) -> DuplicateCheckResult:
        policy = self.store.get_tenant_config(tenant_id).duplicate_prevention_field
        if policy is PreventionField.NONE:
            return DuplicateCheckResult(is_duplicate=False)

        candidate_email = normalize_email(email) if policy.checks_email else ''
        candidate_phone = normalize_phone(phone) if policy.checks_phone else ''
        if not candidate_email and not candidate_phone:
            return DuplicateCheckResult(is_duplicate=False)

        matches = self.store.find(tenant_id, LeadFilter(
            email=candidate_email or None,
            phone=candidate_phone or None,
            match_any=True,
            limit=1,
        ))
        if not matches:
            return DuplicateCheckResult(is_duplicate=False)

        existing = matches[0]
        match_type = self._match_type(policy, existing, candidate_email, candidate_phone)
        logger.debug(
            f"Lead {email or phone} duplicates {existing.id} ({match_type}) "
            f"in tenant {tenant_id}"
        )
        return DuplicateCheckResult(
            is_duplicate=True,
            existing_lead=existing,
            match_type=match_type,
        )

    @staticmethod
    def _match_type(policy, existing, candidate_email: str, candidate_phone: str) -> str:
        """Name the field(s) the existing lead matched on."""
        if policy is PreventionField.EMAIL:
            return 'email'
        if policy is PreventionField.PHONE:
            return 'phone'

        email_matches = bool(candidate_email) and normalize_email(existing.email) == candidate_email
        phone_matches = bool(candidate_phone) and candidate_phone in normalize_phone(existing.phone)
        if email_matches and phone_matches:
            return 'email_and_phone'
        return 'email' if email_matches else 'phone'
