"""
Pytest fixtures for HMS backend tests.

Provides test database setup, seeded authorization data, per-test
authorization/billing engines and user factories.
"""

import pytest

from hms import create_app
from hms.extensions import db
from hms.models import User, Role, InsuranceProvider, PatientInsurance
from hms.services import permission_service
from hms.services.audit_service import AuditLogger
from hms.services.authorization_service import AuthorizationEngine
from hms.services.billing_service import BillingEngine
from hms.services.permission_admin_service import PermissionAdministrator
from hms.services.permission_cache import MemoryPermissionCache


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PERMISSION_CACHE_BACKEND': 'memory',
        'DEFAULT_TAX_RATE': '0',
        'BILLING_RETRY_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Seed permissions, default roles, dependency edges and role permissions."""
    permission_service.initialize_authorization_data()
    db_session.commit()


@pytest.fixture(scope='function')
def cache():
    return MemoryPermissionCache()


@pytest.fixture(scope='function')
def engine(app, cache):
    """Fresh engine per test, also installed on the app for CLI and decorators."""
    previous = app.extensions["hms.authorization"]
    engine = AuthorizationEngine(cache)
    app.extensions["hms.authorization"] = engine
    yield engine
    app.extensions["hms.authorization"] = previous


@pytest.fixture(scope='function')
def administrator(engine):
    return PermissionAdministrator(engine, AuditLogger())


@pytest.fixture(scope='function')
def billing(db_session):
    return BillingEngine(AuditLogger(), retry_attempts=1)


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user("staff") creates an active user with that role slug."""
    counter = {"n": 0}

    def _make(role_slug=None, *, legacy_role=None, is_active=True, name=None):
        counter["n"] += 1
        role = None
        if role_slug:
            role = db_session.query(Role).filter_by(slug=role_slug).first()
            assert role is not None, f"role {role_slug} not seeded"
        user = User(
            name=name or f"user{counter['n']}",
            email=f"user{counter['n']}@hms.test",
            role=legacy_role if legacy_role is not None else (role.name if role else None),
            role_id=role.id if role else None,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def super_admin(make_user, setup_roles):
    return make_user("super-admin", name="root")


@pytest.fixture(scope='function')
def hospital_admin(make_user, setup_roles):
    return make_user("hospital-admin", name="hadmin")


@pytest.fixture(scope='function')
def department_admin(make_user, setup_roles):
    return make_user("department-admin", name="dadmin")


@pytest.fixture(scope='function')
def staff_user(make_user, setup_roles):
    return make_user("staff", name="staff")


@pytest.fixture(scope='function')
def make_insurance(db_session):
    """Factory for a patient policy with an active provider."""

    def _make(provider_active=True, **overrides):
        provider = InsuranceProvider(name="Acme Health", is_active=provider_active)
        db_session.add(provider)
        db_session.flush()
        values = {
            "patient_id": 1,
            "insurance_provider_id": provider.id,
            "policy_number": "POL-1",
            "deductible_amount": 0,
            "deductible_met": 0,
            "co_pay_amount": 0,
            "co_pay_percentage": 0,
            "annual_max_coverage": 100000,
            "annual_used_amount": 0,
            "is_active": True,
        }
        values.update(overrides)
        insurance = PatientInsurance(**values)
        db_session.add(insurance)
        db_session.commit()
        return insurance

    return _make
