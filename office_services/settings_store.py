"""
office_services.settings_store -- per-Entity settings with a short-TTL cache.

Responsibility:
    Reads the free-form Entity settings map (enabled modules, VAT rate,
    withholding-rate overrides) merged over the configured defaults, and
    applies administrator updates to it.

Architecture position:
    Services layer.  Consumed by the Permission Gate (module checks) and
    the document service (tax defaults).

Invariants:
    - A missing or empty ``enabled_modules`` list means every module is
      enabled; core modules (dashboard, settings) are always enabled.
    - Every write invalidates the cached snapshot for that Entity.  Other
      processes converge within ``settings_cache_ttl_seconds``.
    - Concurrent writes are last-writer-wins on the whole map.
    - ``enabled_modules`` is managed by platform operators only.
"""

from __future__ import annotations

import threading
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, NoReturn
from uuid import UUID

from sqlalchemy.orm import Session

from office_config import get_active_config
from office_config.bridges import build_withholding_rates
from office_config.schema import OfficeConfig
from office_engines.derivation import WithholdingRates
from office_kernel.domain.clock import Clock, SystemClock
from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import ALL_MODULES, CORE_MODULES, ModuleKey, Role
from office_kernel.exceptions import (
    AccessDeniedError,
    EntityNotFoundError,
    InvalidModuleKeyError,
)
from office_kernel.logging_config import get_logger
from office_kernel.models.tenancy import Entity
from office_kernel.services.access_resolver import AccessResolver
from office_kernel.services.base import BaseService

logger = get_logger("services.settings")

ENABLED_MODULES_KEY = "enabled_modules"

_RATE_KEYS = frozenset(
    {
        "vat_standard_rate",
        "vat_reduced_rate",
        "withholding_unverified_rate",
        "withholding_verified_net_rate",
        "withholding_verified_gross_rate",
    }
)


class SettingsCache:
    """
    Thread-safe snapshot cache keyed by Entity id.

    Snapshots expire ``ttl_seconds`` after they were stored; a TTL of 0
    disables caching.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Clock | None = None):
        self._ttl = ttl_seconds
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._entries: dict[UUID, tuple[float, dict[str, Any]]] = {}

    def get(self, entity_id: UUID) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(entity_id)
            if entry is None:
                return None
            expires_at, snapshot = entry
            if self._clock.monotonic() >= expires_at:
                del self._entries[entity_id]
                return None
            return dict(snapshot)

    def put(self, entity_id: UUID, snapshot: Mapping[str, Any]) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[entity_id] = (self._clock.monotonic() + self._ttl, dict(snapshot))

    def invalidate(self, entity_id: UUID) -> None:
        with self._lock:
            self._entries.pop(entity_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class EntitySettingsStore(BaseService[Entity]):
    """
    Read and write access to Entity settings.

    Non-goals:
        - Does NOT commit; writes are flushed in the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        cache: SettingsCache | None = None,
        config: OfficeConfig | None = None,
        resolver: AccessResolver | None = None,
    ):
        super().__init__(session)
        self._config = config or get_active_config()
        self._cache = cache or SettingsCache(self._config.settings_cache_ttl_seconds)
        self._resolver = resolver or AccessResolver(session)
        self._default_withholding = build_withholding_rates(self._config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_settings(self, entity_id: UUID) -> dict[str, Any]:
        """
        Settings of an Entity merged over the configured tax defaults.

        Raises:
            EntityNotFoundError: no such Entity.
        """
        cached = self._cache.get(entity_id)
        if cached is not None:
            return cached

        entity = self.session.get(Entity, entity_id, populate_existing=True)
        if entity is None:
            raise EntityNotFoundError(str(entity_id))
        merged = {**self._config.tax.as_settings(), **(entity.settings or {})}
        self._cache.put(entity_id, merged)
        return dict(merged)

    def enabled_modules(self, entity_id: UUID) -> frozenset[ModuleKey]:
        raw = self.get_settings(entity_id).get(ENABLED_MODULES_KEY)
        if not raw:
            return ALL_MODULES
        enabled = set(CORE_MODULES)
        for key in raw:
            module = ModuleKey.parse(key)
            if module is None:
                logger.warning(
                    "unknown_module_in_settings",
                    extra={"entity_id": str(entity_id), "module_key": key},
                )
                continue
            enabled.add(module)
        return frozenset(enabled)

    def is_module_enabled(self, entity_id: UUID, module: ModuleKey) -> bool:
        return module in self.enabled_modules(entity_id)

    def default_tax_rate(self, entity_id: UUID) -> Decimal:
        return Decimal(str(self.get_settings(entity_id)["vat_standard_rate"]))

    def withholding_rates(self, entity_id: UUID) -> WithholdingRates:
        return WithholdingRates.from_settings(
            self.get_settings(entity_id), defaults=self._default_withholding
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_settings(
        self,
        identity: Identity,
        entity_id: UUID,
        changes: Mapping[str, Any],
    ) -> dict[str, Any]:
        """
        Merge ``changes`` into an Entity's settings map.

        Raises:
            AccessDeniedError: identity is not an administrator, or tries to
                change ``enabled_modules`` without being PLATFORM_ADMIN.
            ScopeViolationError: Entity outside the identity's scope.
            ValueError: a rate key holds something other than a number in 0..100.
        """
        if not identity.is_active or not identity.role.is_admin:
            self._deny(identity, "update", "administrators only")
        if ENABLED_MODULES_KEY in changes and identity.role != Role.PLATFORM_ADMIN:
            self._deny(identity, "update", "enabled_modules is managed by platform operators")
        self._resolver.require_in_scope(identity, entity_id, resource="settings")

        normalized = dict(changes)
        for key in _RATE_KEYS.intersection(changes):
            normalized[key] = _normalize_rate(key, changes[key])

        entity = self._load(entity_id)
        entity.settings = {**(entity.settings or {}), **normalized}
        self.session.flush()
        self._cache.invalidate(entity_id)

        logger.info(
            "entity_settings_updated",
            extra={
                "entity_id": str(entity_id),
                "identity_id": str(identity.identity_id),
                "keys": sorted(changes),
            },
        )
        return self.get_settings(entity_id)

    def set_enabled_modules(
        self,
        identity: Identity,
        entity_id: UUID,
        modules: Iterable[str | ModuleKey],
    ) -> frozenset[ModuleKey]:
        """
        Replace the enabled-module list of an Entity.  PLATFORM_ADMIN only.

        An empty iterable re-enables every module.

        Raises:
            AccessDeniedError, InvalidModuleKeyError, EntityNotFoundError.
        """
        if not identity.is_active or identity.role != Role.PLATFORM_ADMIN:
            self._deny(identity, "manage_modules", "platform administrators only")

        parsed: list[ModuleKey] = []
        for key in modules:
            module = ModuleKey.parse(key)
            if module is None:
                raise InvalidModuleKeyError(str(key))
            parsed.append(module)

        entity = self._load(entity_id)
        entity.settings = {
            **(entity.settings or {}),
            ENABLED_MODULES_KEY: sorted({m.value for m in parsed}),
        }
        self.session.flush()
        self._cache.invalidate(entity_id)

        logger.info(
            "entity_modules_updated",
            extra={"entity_id": str(entity_id), "modules": sorted(m.value for m in parsed)},
        )
        return self.enabled_modules(entity_id)

    def _load(self, entity_id: UUID) -> Entity:
        entity = self.session.get(Entity, entity_id, populate_existing=True)
        if entity is None:
            raise EntityNotFoundError(str(entity_id))
        return entity

    def _deny(self, identity: Identity, action: str, reason: str) -> NoReturn:
        logger.warning(
            "access_denied",
            extra={
                "identity_id": str(identity.identity_id),
                "resource": "settings",
                "action": action,
                "reason": reason,
            },
        )
        raise AccessDeniedError(str(identity.identity_id), "settings", action, reason)


def _normalize_rate(key: str, value: Any) -> str:
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a number: {value!r}") from exc
    if isinstance(value, float) or not (0 <= rate <= 100):
        raise ValueError(f"{key}: expected a number in 0..100 as str or int, got {value!r}")
    return str(rate)
