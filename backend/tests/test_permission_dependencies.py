"""
Permission dependency validation tests.

Verifies:
- Multi-level chains report one error per missing edge
- Multiple prerequisites of one permission are all reported
- Closed sets validate cleanly, cycles do not loop
"""

import pytest

from hms.models import Permission, PermissionDependency
from hms.services.dependency_service import (
    validate_permission_dependencies,
    validate_permission_additions,
)


@pytest.fixture
def make_permissions(db_session):
    def _make(*names):
        rows = [Permission(name=name, module="test") for name in names]
        db_session.add_all(rows)
        db_session.commit()
        return {row.name: row.id for row in rows}
    return _make


def _depend(db_session, ids, dependent, prerequisite):
    db_session.add(PermissionDependency(permission_id=ids[dependent], depends_on_permission_id=ids[prerequisite]))
    db_session.commit()


def _edges(errors):
    return {(error.permission, error.missing) for error in errors}


class TestChains:

    def test_transitive_chain_reports_every_missing_edge(self, db_session, make_permissions):
        ids = make_permissions("a", "b", "c")
        _depend(db_session, ids, "c", "b")
        _depend(db_session, ids, "b", "a")

        errors = validate_permission_dependencies([ids["c"]])

        assert _edges(errors) == {("c", "b"), ("b", "a")}

    def test_closed_set_is_valid(self, db_session, make_permissions):
        ids = make_permissions("a", "b", "c")
        _depend(db_session, ids, "c", "b")
        _depend(db_session, ids, "b", "a")

        assert validate_permission_dependencies([ids["a"], ids["b"], ids["c"]]) == []

    def test_partial_chain_reports_only_the_gap(self, db_session, make_permissions):
        ids = make_permissions("a", "b", "c")
        _depend(db_session, ids, "c", "b")
        _depend(db_session, ids, "b", "a")

        errors = validate_permission_dependencies([ids["c"], ids["b"]])

        assert _edges(errors) == {("b", "a")}

    def test_multiple_prerequisites(self, db_session, make_permissions):
        ids = make_permissions("a", "b", "c")
        _depend(db_session, ids, "c", "a")
        _depend(db_session, ids, "c", "b")

        errors = validate_permission_dependencies([ids["c"]])

        assert _edges(errors) == {("c", "a"), ("c", "b")}
        assert validate_permission_dependencies([ids["c"], ids["a"]])[0].missing == "b"

    def test_diamond_reports_shared_prerequisite_once_per_edge(self, db_session, make_permissions):
        ids = make_permissions("root", "left", "right", "top")
        _depend(db_session, ids, "top", "left")
        _depend(db_session, ids, "top", "right")
        _depend(db_session, ids, "left", "root")
        _depend(db_session, ids, "right", "root")

        errors = validate_permission_dependencies([ids["top"], ids["left"], ids["right"]])

        assert _edges(errors) == {("left", "root"), ("right", "root")}
        assert len(errors) == 2

    def test_cycle_terminates(self, db_session, make_permissions):
        ids = make_permissions("x", "y")
        _depend(db_session, ids, "x", "y")
        _depend(db_session, ids, "y", "x")

        assert validate_permission_dependencies([ids["x"], ids["y"]]) == []
        assert _edges(validate_permission_dependencies([ids["x"]])) == {("x", "y")}

    def test_error_message_names_both_sides(self, db_session, make_permissions):
        ids = make_permissions("a", "b")
        _depend(db_session, ids, "b", "a")

        [error] = validate_permission_dependencies([ids["b"]])

        assert str(error) == "Permission 'b' requires 'a'"

    def test_no_dependencies(self, db_session, make_permissions):
        ids = make_permissions("solo")
        assert validate_permission_dependencies([ids["solo"]]) == []
        assert validate_permission_dependencies([]) == []


class TestAdditions:

    def test_existing_gaps_are_not_reported(self, db_session, make_permissions):
        ids = make_permissions("a", "b", "other")
        _depend(db_session, ids, "b", "a")

        # "b" already lacks "a"; adding an unrelated permission is fine
        assert validate_permission_additions([ids["b"]], [ids["other"]]) == []

    def test_added_permission_checked_against_existing(self, db_session, make_permissions):
        ids = make_permissions("a", "b")
        _depend(db_session, ids, "b", "a")

        assert validate_permission_additions([ids["a"]], [ids["b"]]) == []
        assert _edges(validate_permission_additions([], [ids["b"]])) == {("b", "a")}


class TestSeededGraph:

    def test_default_role_sets_are_closed(self, db_session, setup_roles):
        from hms.models import Role, RolePermission

        for role in db_session.query(Role).all():
            ids = [rp.permission_id for rp in db_session.query(RolePermission).filter_by(role_id=role.id)]
            assert validate_permission_dependencies(ids) == [], role.slug
