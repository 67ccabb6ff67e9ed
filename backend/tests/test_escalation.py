"""
Escalation control tests (pure functions, no database).
"""

from types import SimpleNamespace

from hms.services.escalation_service import (
    check_role_assignment,
    check_permission_grant,
    check_role_permission_change,
    check_inheritance_safety,
    detect_privilege_escalation,
)


def _types(decision):
    return [violation.type for violation in decision.violations]


def _role(id, priority, module_access=None, is_system=True):
    return SimpleNamespace(id=id, priority=priority, module_access=module_access, is_system=is_system)


class TestRoleAssignment:

    def test_lower_role_allowed(self):
        decision = check_role_assignment(80, 70, target_current_priority=30)
        assert decision.allowed
        assert decision.reasons == []

    def test_hospital_admin_cannot_assign_super_admin(self):
        decision = check_role_assignment(80, 100, target_current_priority=30)
        assert not decision.allowed
        assert _types(decision) == ["privilege_escalation"]

    def test_equal_priority_rejected(self):
        assert _types(check_role_assignment(80, 80)) == ["privilege_escalation"]

    def test_self_escalation(self):
        decision = check_role_assignment(80, 100, is_self=True, target_current_priority=80)
        assert _types(decision) == ["self_privilege_escalation"]

    def test_self_demotion_allowed(self):
        assert check_role_assignment(80, 30, is_self=True, target_current_priority=80).allowed

    def test_cannot_touch_peer_or_superior(self):
        decision = check_role_assignment(70, 30, target_current_priority=80)
        assert _types(decision) == ["target_outranks_actor"]

    def test_super_admin_bypass(self):
        assert check_role_assignment(100, 100, actor_is_super_admin=True).allowed

    def test_actor_without_role(self):
        assert _types(check_role_assignment(None, 10)) == ["actor_has_no_role"]


class TestPermissionGrant:

    def test_held_permission_to_subordinate(self):
        decision = check_permission_grant(80, {"view-bills"}, ["view-bills"], target_priority=30)
        assert decision.allowed

    def test_cannot_grant_unheld_permission(self):
        decision = check_permission_grant(70, {"view-bills"}, ["view-bills", "void-bills"], target_priority=30)
        assert _types(decision) == ["grantor_lacks_target_permission"]
        assert "void-bills" in decision.reasons[0]

    def test_critical_permission_needs_high_priority(self):
        decision = check_permission_grant(
            80,
            {"delete-patients"},
            ["delete-patients"],
            critical_permissions={"delete-patients"},
            target_priority=30,
        )
        assert _types(decision) == ["critical_permission"]

        assert check_permission_grant(
            90,
            {"delete-patients"},
            ["delete-patients"],
            critical_permissions={"delete-patients"},
            target_priority=30,
        ).allowed

    def test_cannot_grant_to_self(self):
        decision = check_permission_grant(80, {"view-bills"}, ["view-bills"], target_priority=80, is_self=True)
        assert _types(decision) == ["self_privilege_escalation"]

    def test_cannot_grant_to_peer(self):
        decision = check_permission_grant(60, {"view-bills"}, ["view-bills"], target_priority=60)
        assert _types(decision) == ["target_outranks_actor"]

    def test_all_violations_reported(self):
        decision = check_permission_grant(
            60,
            set(),
            ["void-bills"],
            critical_permissions={"void-bills"},
            target_priority=70,
        )
        assert _types(decision) == ["target_outranks_actor", "grantor_lacks_target_permission", "critical_permission"]

    def test_super_admin_bypass(self):
        assert check_permission_grant(100, set(), ["anything"], actor_is_super_admin=True, is_self=True).allowed


class TestRolePermissionChange:

    def test_cannot_edit_higher_role(self):
        decision = check_role_permission_change(70, 80, {"view-bills"}, ["view-bills"])
        assert _types(decision) == ["role_outranks_actor"]

    def test_edit_lower_role(self):
        assert check_role_permission_change(80, 30, {"view-bills"}, ["view-bills"]).allowed

    def test_removal_only_needs_rank(self):
        assert check_role_permission_change(80, 30, set(), []).allowed


class TestInheritanceSafety:

    def test_safe(self):
        assert check_inheritance_safety(_role(1, 80, ["*"]), _role(2, 70, ["patients"])) == []

    def test_circular(self):
        issues = check_inheritance_safety(_role(2, 80), _role(1, 70), child_ancestor_ids=[5, 2])
        assert "circular_inheritance" in issues

    def test_self_parent(self):
        assert "circular_inheritance" in check_inheritance_safety(_role(1, 80), _role(1, 80))

    def test_parent_priority_not_higher(self):
        assert check_inheritance_safety(_role(1, 60), _role(2, 60)) == ["parent_priority_not_higher"]

    def test_module_access_not_subset(self):
        issues = check_inheritance_safety(_role(1, 80, ["patients"]), _role(2, 70, ["patients", "billing"]))
        assert issues == ["incompatible_module_access"]

    def test_system_role_under_custom_role(self):
        issues = check_inheritance_safety(_role(1, 80, is_system=False), _role(2, 70, is_system=True))
        assert issues == ["system_role_inheriting_from_custom_role"]


class TestEscalationReport:

    def test_priority_escalation(self):
        findings = detect_privilege_escalation(30, 80, {"view-patients"})
        assert [f.type for f in findings] == ["priority_escalation"]

    def test_no_findings_for_lateral_move(self):
        assert detect_privilege_escalation(60, 60, {"view-patients"}) == []

    def test_excessive_permissions(self):
        many = {f"perm-{i}" for i in range(101)}
        assert [f.type for f in detect_privilege_escalation(70, 70, many)] == ["excessive_permissions"]
        assert detect_privilege_escalation(80, 80, many) == []

    def test_sensitive_accumulation(self, monkeypatch):
        from hms.services import escalation_service

        monkeypatch.setattr(escalation_service, "SENSITIVE_PERMISSION_THRESHOLD", 2)
        held = {"void-bills", "refund-payments", "delete-users", "view-patients"}

        assert [f.type for f in detect_privilege_escalation(90, 90, held)] == ["sensitive_permission_accumulation"]
        assert detect_privilege_escalation(90, 90, {"void-bills", "view-patients"}) == []

    def test_no_role(self):
        assert detect_privilege_escalation(None, 100, set()) == []
