"""
Pytest configuration and shared fixtures for DevHelp tests.

Provides:
- A fresh app per test on an in-memory SQLite database
- User factories (clients, developers, staff) and their Actors
- Logged-in API clients
"""
from types import SimpleNamespace

import pytest

from devhelp import create_app
from devhelp.config import TestConfig
from devhelp.context import Actor
from devhelp.extensions import db
from devhelp.models import DeveloperProfile, User
from devhelp.services import application_store, request_store

PASSWORD = "s3cretpass1"


# =============================================================================
# App / Database Fixtures
# =============================================================================

@pytest.fixture
def app(tmp_path):
    class Cfg(TestConfig):
        LOG_DIR = str(tmp_path / "logs")

    app = create_app(Cfg)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """An application context for calling stores directly."""
    with app.app_context():
        yield app
        db.session.remove()


# =============================================================================
# Sample Data Factories
# =============================================================================

def make_user(name, user_type="client", *, skills=None, rating=None, online=False,
              available=True, is_staff=False, with_profile=True):
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@devhelp.io",
        user_type=user_type,
        is_staff=is_staff,
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.flush()
    if user_type == "developer" and with_profile:
        db.session.add(DeveloperProfile(
            user_id=user.id,
            skills=list(skills or []),
            rating=rating,
            online=online,
            availability=available,
        ))
    db.session.commit()
    return user


def request_fields(**overrides):
    fields = {
        "title": "Fix slow query",
        "description": "The dashboard query takes 12 seconds on production.",
        "technical_area": ["Database"],
        "communication_preference": ["Chat"],
        "urgency": "high",
        "budget_range": "$100 - $200",
        "estimated_duration": 60,
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def people(ctx):
    client = make_user("Carol Client")
    other_client = make_user("Oscar Other")
    dev1 = make_user("Dana Dev", "developer", skills=["PostgreSQL", "Python"], rating=4.8, online=True)
    dev2 = make_user("Eli Dev", "developer", skills=["React"], rating=3.5)
    dev3 = make_user("Fay Dev", "developer", with_profile=False)
    staff = make_user("Sam Staff", is_staff=True)
    return SimpleNamespace(
        client=client,
        other_client=other_client,
        dev1=dev1,
        dev2=dev2,
        dev3=dev3,
        staff=staff,
        as_client=Actor.from_user(client),
        as_other_client=Actor.from_user(other_client),
        as_dev1=Actor.from_user(dev1),
        as_dev2=Actor.from_user(dev2),
        as_dev3=Actor.from_user(dev3),
        as_staff=Actor.from_user(staff),
    )


@pytest.fixture
def open_request(people):
    """A freshly created request owned by people.client."""
    res = request_store.create(people.as_client, request_fields())
    assert res.success, res.error
    return res.data


def apply(people, request_id, actor, **kw):
    kw.setdefault("message", "I can help with this.")
    kw.setdefault("proposed_rate", 50)
    res = application_store.submit(actor, request_id, actor.user_id, **kw)
    assert res.success, res.error
    return res.data


# =============================================================================
# API Client Fixtures
# =============================================================================

@pytest.fixture
def login(app):
    """login(email) -> a test client holding that user's session cookie."""
    def _login(email, password=PASSWORD):
        c = app.test_client()
        resp = c.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return c
    return _login


@pytest.fixture
def api_people(app):
    """Users created outside any long-lived context; returns plain ids and emails."""
    with app.app_context():
        client = make_user("Carol Client")
        other = make_user("Oscar Other")
        dev1 = make_user("Dana Dev", "developer", skills=["PostgreSQL"], rating=4.5)
        dev2 = make_user("Eli Dev", "developer", skills=["React"])
        staff = make_user("Sam Staff", is_staff=True)
        out = SimpleNamespace(**{
            key: SimpleNamespace(id=u.id, email=u.email)
            for key, u in (("client", client), ("other", other), ("dev1", dev1),
                           ("dev2", dev2), ("staff", staff))
        })
        db.session.remove()
    return out
