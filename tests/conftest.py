import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("SECRET_KEY", "test_secret")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine, select
from sqlalchemy.pool import StaticPool

from crewkit.main import app
from crewkit.db import get_session
from crewkit.models import (
    Assembly,
    AssemblyItem,
    AssemblyStatus,
    Equipment,
    Inventory,
    Role,
    Team,
    User,
)
from crewkit.security import hash_password

PASSWORD = "password123"


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture()
def client(engine):
    def override_get_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session):
    counter = {"n": 0}

    def _make(role=Role.FIELD, email=None, name=None, team_id=None):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@example.com",
            name=name or f"{role.value.title()} {counter['n']}",
            password_hash=hash_password(PASSWORD),
            role=role,
            team_id=team_id,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_team(session):
    def _make(name="Crew A", creator=None):
        team = Team(name=name, creator_id=creator.id if creator else None)
        session.add(team)
        session.commit()
        session.refresh(team)
        return team

    return _make


@pytest.fixture()
def make_equipment(session):
    counter = {"n": 0}

    def _make(name=None, sku=None, price=1.0, quantity=0, with_inventory=True, **fields):
        counter["n"] += 1
        equipment = Equipment(
            name=name or f"Item {counter['n']}",
            sku=sku or f"SKU-{counter['n']}",
            price_per_unit=price,
            **fields,
        )
        session.add(equipment)
        session.commit()
        session.refresh(equipment)
        if with_inventory:
            session.add(Inventory(equipment_id=equipment.id, quantity=quantity))
            session.commit()
            session.refresh(equipment)
        return equipment

    return _make


@pytest.fixture()
def make_assembly(session):
    def _make(creator, items, name="Assembly", status=AssemblyStatus.APPROVED, categories=None):
        assembly = Assembly(
            name=name,
            status=status,
            categories=categories or [],
            created_by_id=creator.id,
            items=[AssemblyItem(equipment_id=eq.id, quantity=qty) for eq, qty in items],
        )
        session.add(assembly)
        session.commit()
        session.refresh(assembly)
        return assembly

    return _make


@pytest.fixture()
def login(client):
    def _login(user, password=PASSWORD):
        r = client.post("/auth/login", data={"username": user.email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['access_token']}"}

    return _login


@pytest.fixture()
def stock(session):
    def _stock(equipment_id):
        session.expire_all()
        inv = session.exec(select(Inventory).where(Inventory.equipment_id == equipment_id)).first()
        return inv.quantity if inv else None

    return _stock
