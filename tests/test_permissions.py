"""Tests for role capabilities."""

from types import SimpleNamespace

import pytest

from npwt.core import permissions as perms
from npwt.core.permissions import can, has_permission
from npwt.core.roles import Role, normalize_role


def actor(role, is_active=True):
    return SimpleNamespace(role=role, is_active=is_active)


class TestRoles:
    @pytest.mark.parametrize("value, expected", [
        ("administrador", Role.ADMINISTRADOR),
        (" Cirujano ", Role.CIRUJANO),
        ("enfermera", Role.SOPORTE),
        (Role.FINANCIERO, Role.FINANCIERO),
        ("visitante", None),
        (None, None),
    ])
    def test_normalize_role(self, value, expected):
        assert normalize_role(value) is expected


class TestCapabilities:
    def test_admin_has_every_action(self):
        for action in (perms.INVENTORY_CREATE, perms.MACHINE_DELETE, perms.REPORTS_RECONCILE):
            assert has_permission("administrador", action)

    def test_surgeon_works_on_procedures_only(self):
        assert can(actor("cirujano"), perms.PROCEDURE_SUPPLIES)
        assert can(actor("cirujano"), perms.PROCEDURE_CLOSE)
        assert not can(actor("cirujano"), perms.INVENTORY_EDIT)
        assert not can(actor("cirujano"), perms.REPORTS_VIEW)

    def test_legacy_nurse_role_acts_as_support(self):
        assert can(actor("enfermera"), perms.PROCEDURE_CREATE)
        assert not can(actor("enfermera"), perms.STOCK_ADJUST)

    def test_finance_only_reads_reports(self):
        assert can(actor("financiero"), perms.REPORTS_VIEW)
        assert not can(actor("financiero"), perms.REPORTS_RECONCILE)
        assert not can(actor("financiero"), perms.PROCEDURE_SUPPLIES)

    def test_inactive_or_missing_actor_is_refused(self):
        assert not can(actor("administrador", is_active=False), perms.INVENTORY_CREATE)
        assert not can(None, perms.REPORTS_VIEW)

    def test_unknown_role_has_nothing(self):
        assert not has_permission("visitante", perms.REPORTS_VIEW)
