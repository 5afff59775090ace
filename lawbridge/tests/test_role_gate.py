"""
Role Gate Tests
===============

Case-insensitive role matching, fail-closed behavior and the HTTP surface
of a denied request.
"""

from types import SimpleNamespace

import pytest

from lawbridge.auth import Principal, RoleGate, authorize, parse_role
from lawbridge.db.models import Role
from lawbridge.errors import Forbidden


class TestParseRole:

    @pytest.mark.parametrize("raw", ["advocate", "ADVOCATE", "Advocate", "  advocate "])
    def test_case_insensitive(self, raw):
        assert parse_role(raw) == Role.ADVOCATE

    def test_enum_passes_through(self):
        assert parse_role(Role.MEDIATOR) == Role.MEDIATOR

    @pytest.mark.parametrize("raw", [None, "", "superuser"])
    def test_unknown_is_none(self, raw):
        assert parse_role(raw) is None


class TestRoleGate:

    @pytest.mark.parametrize("role", ["advocate", "ADVOCATE", "Advocate"])
    def test_allows_any_casing(self, role):
        gate = authorize("Advocate")
        who = Principal(user_id="u1", role=role)
        assert gate.check(who) is who

    def test_denies_missing_principal(self):
        with pytest.raises(Forbidden) as exc:
            authorize("advocate").check(None)
        assert exc.value.message == "Access denied. No user role found."

    def test_denies_principal_without_role_field(self):
        with pytest.raises(Forbidden) as exc:
            authorize("advocate").check(SimpleNamespace(user_id="u1"))
        assert exc.value.message == "Access denied. No user role found."

    @pytest.mark.parametrize("role", [None, ""])
    def test_denies_empty_role(self, role):
        with pytest.raises(Forbidden):
            authorize("advocate").check(Principal(user_id="u1", role=role))

    def test_denies_other_role_with_its_name(self):
        with pytest.raises(Forbidden) as exc:
            authorize(Role.ADVOCATE, Role.ADMIN).check(Principal(user_id="u1", role=Role.CLIENT))
        assert exc.value.message == "Access denied. client is not authorized to perform this action."

    def test_denies_unknown_role_label(self):
        with pytest.raises(Forbidden):
            authorize(Role.ADMIN).check(Principal(user_id="u1", role="superuser"))

    def test_unknown_role_rejected_at_registration(self):
        with pytest.raises(ValueError):
            RoleGate(["advocate", "wizard"])

    @pytest.mark.asyncio
    async def test_dependency_call(self):
        who = Principal(user_id="u1", role=Role.ADMIN)
        assert await authorize("admin")(who) is who


class TestRoleGateHttp:

    def test_client_denied_case_stats(self, client, auth):
        response = client.get("/api/cases/stats", headers=auth("client"))

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Access denied. client is not authorized to perform this action."
        assert body["error"]["code"] == "forbidden"

    def test_advocate_allowed_case_stats(self, client, auth):
        response = client.get("/api/cases/stats", headers=auth("advocate"))
        assert response.status_code == 200
        assert response.json()["data"]["total"] == 0

    def test_gate_runs_before_case_lookup(self, client, auth):
        # unknown case, but the role is rejected first
        response = client.delete("/api/cases/does-not-exist", headers=auth("client"))
        assert response.status_code == 403
