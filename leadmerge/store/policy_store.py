"""Reads and writes the per-tenant duplicate prevention policy."""

import logging
from datetime import datetime, timezone

from ..core.tenant import PreventionField, TenantConfig
from ..errors import InvalidPolicy, PolicyAlreadyConfigured
from ..merge.locks import TenantLockRegistry, default_locks
from .base import RecordStore

logger = logging.getLogger(__name__)


class PolicyStore:
    """
    Tenant duplicate prevention configuration.

    The policy is a one-time setting: once a tenant has a non-``none``
    policy, every further attempt to set it fails.
    """

    def __init__(self, store: RecordStore, locks: TenantLockRegistry | None = None):
        self.store = store
        self.locks = locks or default_locks

    def get_config(self, tenant_id: str) -> TenantConfig:
        return self.store.get_tenant_config(tenant_id)

    def get_prevention_policy(self, tenant_id: str) -> PreventionField:
        """Return the tenant's policy, ``NONE`` when unset."""
        return self.get_config(tenant_id).duplicate_prevention_field

    def set_prevention_policy(
        self,
        tenant_id: str,
        policy: PreventionField | str
    ) -> TenantConfig:
        """
        Configure the tenant's policy and stamp the configuration time.

        Args:
            tenant_id: Tenant to configure
            policy: New policy

        Returns:
            The stored TenantConfig

        Raises:
            PolicyAlreadyConfigured: A non-``none`` policy already exists
            InvalidPolicy: ``policy`` is not a known value
        """
        try:
            policy = PreventionField.parse(policy)
        except ValueError as e:
            raise InvalidPolicy(f"Unknown duplicate prevention policy: {policy!r}") from e

        with self.locks.hold(tenant_id), self.store.transaction():
            config = self.store.get_tenant_config(tenant_id)
            if config.is_prevention_configured:
                raise PolicyAlreadyConfigured(
                    tenant_id, config.duplicate_prevention_field.value
                )

            config.duplicate_prevention_field = policy
            config.duplicate_prevention_configured_at = (
                datetime.now(timezone.utc) if policy is not PreventionField.NONE else None
            )
            self.store.set_tenant_config(tenant_id, config)

        logger.info(f"Duplicate prevention for tenant {tenant_id} set to {policy.value}")
        return config
