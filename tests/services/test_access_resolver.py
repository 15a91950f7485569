"""
Tests for Entity-scope resolution.

Scope is a function of role + home Entity only, read fresh on every call.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from office_kernel.domain.identity import Identity
from office_kernel.domain.roles import Role
from office_kernel.exceptions import InactiveEntityError, ScopeViolationError
from office_kernel.models.tenancy import Entity, TenantAccount
from office_kernel.services.access_resolver import AccessResolver


@pytest.fixture
def resolver(session):
    return AccessResolver(session)


def _deactivate(session, model, row_id):
    row = session.get(model, row_id)
    row.is_active = False
    session.commit()


class TestResolveAccessibleEntities:

    def test_platform_admin_sees_every_entity(self, resolver, tenancy):
        assert resolver.resolve_accessible_entities(tenancy.platform_admin) == {
            tenancy.acme_north,
            tenancy.acme_south,
            tenancy.globex_main,
        }

    def test_platform_admin_sees_entities_created_later(self, session, resolver, tenancy):
        late = Entity(account_id=tenancy.globex, name="Globex East", slug="east", settings={})
        session.add(late)
        session.commit()
        assert late.id in resolver.resolve_accessible_entities(tenancy.platform_admin)

    def test_account_admin_sees_own_account(self, resolver, tenancy):
        assert resolver.resolve_accessible_entities(tenancy.account_admin) == {
            tenancy.acme_north,
            tenancy.acme_south,
        }

    @pytest.mark.parametrize("who", ["entity_admin", "entity_user"])
    def test_entity_roles_see_exactly_home(self, resolver, tenancy, who):
        assert resolver.resolve_accessible_entities(getattr(tenancy, who)) == {
            tenancy.acme_north
        }

    def test_entity_user_without_home_sees_nothing(self, resolver):
        orphan = Identity(identity_id=uuid4(), role=Role.ENTITY_USER, home_entity_id=None)
        assert resolver.resolve_accessible_entities(orphan) == frozenset()

    def test_unknown_home_sees_nothing(self, resolver, tenancy):
        stray = Identity(identity_id=uuid4(), role=Role.ACCOUNT_ADMIN, home_entity_id=uuid4())
        assert resolver.resolve_accessible_entities(stray) == frozenset()

    def test_inactive_identity_sees_nothing(self, resolver, tenancy):
        disabled = Identity(
            identity_id=uuid4(),
            role=Role.PLATFORM_ADMIN,
            home_entity_id=None,
            is_active=False,
        )
        assert resolver.resolve_accessible_entities(disabled) == frozenset()

    def test_deactivated_entity_drops_out(self, session, resolver, tenancy):
        _deactivate(session, Entity, tenancy.acme_south)

        assert tenancy.acme_south not in resolver.resolve_accessible_entities(
            tenancy.account_admin
        )
        assert tenancy.acme_south in resolver.resolve_accessible_entities(
            tenancy.platform_admin
        )

    def test_deactivated_home_empties_entity_scope(self, session, resolver, tenancy):
        _deactivate(session, Entity, tenancy.acme_north)
        assert resolver.resolve_accessible_entities(tenancy.entity_user) == frozenset()

    def test_deactivated_account_empties_scopes(self, session, resolver, tenancy):
        _deactivate(session, TenantAccount, tenancy.acme)
        assert resolver.resolve_accessible_entities(tenancy.account_admin) == frozenset()
        assert resolver.resolve_accessible_entities(tenancy.entity_admin) == frozenset()


class TestScopeEnforcement:

    def test_entity_admin_cannot_reach_other_entity(self, resolver, tenancy, captured_logs):
        with pytest.raises(ScopeViolationError) as exc_info:
            resolver.require_in_scope(
                tenancy.entity_admin, tenancy.acme_south, resource="invoices"
            )
        assert exc_info.value.code == "SCOPE_VIOLATION"

        violations = [r for r in captured_logs() if r["message"] == "scope_violation"]
        assert len(violations) == 1
        assert violations[0]["level"] == "WARNING"
        assert violations[0]["target_entity_id"] == str(tenancy.acme_south)

    def test_in_scope_passes(self, resolver, tenancy):
        resolver.require_in_scope(tenancy.account_admin, tenancy.acme_south)

    def test_effective_entity_defaults_to_home(self, resolver, tenancy):
        assert resolver.effective_entity(tenancy.entity_user) == tenancy.acme_north

    def test_effective_entity_uses_selected_entity(self, resolver, tenancy):
        roaming = tenancy.account_admin.with_active_entity(tenancy.acme_south)
        assert resolver.effective_entity(roaming) == tenancy.acme_south

    def test_stale_selection_is_rejected(self, resolver, tenancy):
        forged = tenancy.entity_user.with_active_entity(tenancy.globex_main)
        with pytest.raises(ScopeViolationError):
            resolver.effective_entity(forged)

    def test_effective_entity_without_any_entity(self, resolver, tenancy):
        with pytest.raises(ScopeViolationError):
            resolver.effective_entity(tenancy.platform_admin)

    def test_select_active_entity(self, resolver, tenancy):
        selected = resolver.select_active_entity(tenancy.account_admin, tenancy.acme_south)
        assert selected.active_entity_id == tenancy.acme_south
        assert tenancy.account_admin.active_entity_id is None

    def test_platform_admin_cannot_select_inactive_entity(self, session, resolver, tenancy):
        _deactivate(session, Entity, tenancy.globex_main)
        with pytest.raises(InactiveEntityError):
            resolver.select_active_entity(tenancy.platform_admin, tenancy.globex_main)

    def test_list_accessible_entities_ordered_by_name(self, resolver, tenancy):
        names = [e.name for e in resolver.list_accessible_entities(tenancy.platform_admin)]
        assert names == ["Acme North", "Acme South", "Globex Main"]

    def test_scope_filter(self, session, resolver, tenancy):
        stmt = resolver.scope_filter(select(Entity.id), Entity.id, tenancy.account_admin)
        assert set(session.execute(stmt).scalars()) == {tenancy.acme_north, tenancy.acme_south}

    def test_scope_filter_fails_closed(self, session, resolver, tenancy):
        nobody = Identity(identity_id=uuid4(), role=Role.ENTITY_USER, home_entity_id=None)
        stmt = resolver.scope_filter(select(Entity.id), Entity.id, nobody)
        assert list(session.execute(stmt).scalars()) == []
