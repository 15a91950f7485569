"""Tests for Entity settings: defaults, module flags, authority and the TTL cache."""

from decimal import Decimal
from uuid import uuid4

import pytest

from office_kernel.domain.clock import DeterministicClock
from office_kernel.domain.roles import ALL_MODULES, ModuleKey
from office_kernel.exceptions import (
    AccessDeniedError,
    EntityNotFoundError,
    InvalidModuleKeyError,
    ScopeViolationError,
)
from office_kernel.models.tenancy import Entity
from office_services.settings_store import SettingsCache


@pytest.fixture
def store(core):
    return core.settings


class TestSettingsCache:

    def test_expires_after_ttl(self):
        clock = DeterministicClock()
        cache = SettingsCache(ttl_seconds=30, clock=clock)
        key = uuid4()
        cache.put(key, {"a": 1})

        clock.advance(29)
        assert cache.get(key) == {"a": 1}
        clock.advance(1)
        assert cache.get(key) is None

    def test_returns_copies(self):
        cache = SettingsCache(ttl_seconds=30, clock=DeterministicClock())
        key = uuid4()
        cache.put(key, {"a": 1})
        cache.get(key)["a"] = 2
        assert cache.get(key) == {"a": 1}

    def test_zero_ttl_disables_caching(self):
        cache = SettingsCache(ttl_seconds=0, clock=DeterministicClock())
        key = uuid4()
        cache.put(key, {"a": 1})
        assert cache.get(key) is None

    def test_invalidate_and_clear(self):
        cache = SettingsCache(ttl_seconds=30, clock=DeterministicClock())
        first, second = uuid4(), uuid4()
        cache.put(first, {})
        cache.put(second, {})
        cache.invalidate(first)
        assert cache.get(first) is None
        cache.clear()
        assert cache.get(second) is None


class TestReads:

    def test_defaults_merged_under_stored_values(self, session, store, tenancy):
        entity = session.get(Entity, tenancy.acme_north)
        entity.settings = {"vat_standard_rate": "17.5"}
        session.commit()

        settings = store.get_settings(tenancy.acme_north)
        assert settings["vat_standard_rate"] == "17.5"
        assert settings["withholding_unverified_rate"] == "30"
        assert store.default_tax_rate(tenancy.acme_north) == Decimal("17.5")

    def test_missing_entity(self, store):
        with pytest.raises(EntityNotFoundError):
            store.get_settings(uuid4())

    def test_missing_module_list_enables_everything(self, store, tenancy):
        assert store.enabled_modules(tenancy.acme_north) == ALL_MODULES

    def test_unknown_stored_module_is_skipped(self, session, store, tenancy, captured_logs):
        entity = session.get(Entity, tenancy.acme_south)
        entity.settings = {"enabled_modules": ["jobs", "crm"]}
        session.commit()

        modules = store.enabled_modules(tenancy.acme_south)
        assert modules == {ModuleKey.JOBS, ModuleKey.DASHBOARD, ModuleKey.SETTINGS}
        assert any(r["message"] == "unknown_module_in_settings" for r in captured_logs())

    def test_withholding_overrides(self, session, store, tenancy):
        entity = session.get(Entity, tenancy.acme_north)
        entity.settings = {"withholding_verified_net_rate": "15"}
        session.commit()

        rates = store.withholding_rates(tenancy.acme_north)
        assert rates.verified_net == Decimal("15")
        assert rates.unverified == Decimal("30")


class TestWrites:

    def test_admin_update_is_visible_immediately(self, session, store, tenancy):
        store.get_settings(tenancy.acme_north)
        store.update_settings(tenancy.entity_admin, tenancy.acme_north, {"vat_standard_rate": 5})
        session.commit()
        assert store.get_settings(tenancy.acme_north)["vat_standard_rate"] == "5"

    def test_update_preserves_other_keys(self, session, store, tenancy):
        store.set_enabled_modules(tenancy.platform_admin, tenancy.acme_north, ["jobs"])
        store.update_settings(tenancy.entity_admin, tenancy.acme_north, {"theme": "dark"})
        session.commit()
        settings = store.get_settings(tenancy.acme_north)
        assert settings["enabled_modules"] == ["jobs"]
        assert settings["theme"] == "dark"

    def test_entity_user_cannot_update(self, store, tenancy):
        with pytest.raises(AccessDeniedError):
            store.update_settings(tenancy.entity_user, tenancy.acme_north, {"theme": "dark"})

    def test_only_platform_admin_changes_modules(self, store, tenancy):
        with pytest.raises(AccessDeniedError):
            store.update_settings(
                tenancy.account_admin, tenancy.acme_north, {"enabled_modules": ["jobs"]}
            )
        with pytest.raises(AccessDeniedError):
            store.set_enabled_modules(tenancy.account_admin, tenancy.acme_north, ["jobs"])

    def test_update_out_of_scope(self, store, tenancy):
        with pytest.raises(ScopeViolationError):
            store.update_settings(tenancy.entity_admin, tenancy.globex_main, {"theme": "x"})

    @pytest.mark.parametrize("bad", ["abc", 150, 12.5])
    def test_rate_validation(self, store, tenancy, bad):
        with pytest.raises(ValueError):
            store.update_settings(
                tenancy.entity_admin, tenancy.acme_north, {"vat_standard_rate": bad}
            )

    def test_unknown_module_key(self, store, tenancy):
        with pytest.raises(InvalidModuleKeyError):
            store.set_enabled_modules(tenancy.platform_admin, tenancy.acme_north, ["crm"])

    def test_stale_cache_until_ttl_for_external_writes(self, session, store, clock, tenancy):
        assert store.get_settings(tenancy.acme_north)["vat_standard_rate"] == "20"

        entity = session.get(Entity, tenancy.acme_north)
        entity.settings = {"vat_standard_rate": "12"}
        session.commit()

        assert store.get_settings(tenancy.acme_north)["vat_standard_rate"] == "20"
        clock.advance(30)
        assert store.get_settings(tenancy.acme_north)["vat_standard_rate"] == "12"
