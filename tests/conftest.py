"""
Pytest configuration and shared fixtures for testing the Room Reservations API.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from reservations.database import Base  # noqa: E402
from reservations.main import app  # noqa: E402
from reservations.deps import get_db, get_password_hash  # noqa: E402
from reservations.circuit_breaker import notification_circuit_breaker  # noqa: E402
from reservations import models  # noqa: E402


# Use an in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    """
    The notification breaker is module level; start every test with it closed.
    """
    notification_circuit_breaker.close()
    yield
    notification_circuit_breaker.close()


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with the test database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_user(db_session, name, username, email, password, role):
    user = models.User(
        name=name,
        username=username,
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _login(client, username, password):
    response = client.post(
        "/users/login",
        params={"username": username, "password": password},
    )
    return response.json()["access_token"]


@pytest.fixture
def admin_user(db_session):
    """
    Create an admin user for testing.
    """
    return _create_user(db_session, "Admin User", "admin", "admin@example.com", "adminpass123", "admin")


@pytest.fixture
def director_user(db_session):
    """
    Create a director user for testing.
    """
    return _create_user(db_session, "Dana Director", "director", "director@example.com", "directorpass123", "director")


@pytest.fixture
def guest_user(db_session):
    """
    Create a guest user for testing.
    """
    return _create_user(db_session, "Guest User", "guest", "guest@example.com", "guestpass123", "guest")


@pytest.fixture
def other_guest(db_session):
    """
    Create a second guest who owns nothing shared with ``guest_user``.
    """
    return _create_user(db_session, "Other Guest", "otherguest", "other@example.com", "otherpass123", "guest")


@pytest.fixture
def admin_token(client, admin_user):
    return _login(client, "admin", "adminpass123")


@pytest.fixture
def director_token(client, director_user):
    return _login(client, "director", "directorpass123")


@pytest.fixture
def guest_token(client, guest_user):
    return _login(client, "guest", "guestpass123")


@pytest.fixture
def other_guest_token(client, other_guest):
    return _login(client, "otherguest", "otherpass123")


@pytest.fixture
def sample_location(db_session):
    """
    Create a sample location for testing.
    """
    location = models.Location(
        name="Main Building",
        description="Head office",
        latitude=52.37,
        longitude=4.89,
    )
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def sample_room(db_session, sample_location):
    """
    Create a sample room for testing.
    """
    room = models.Room(
        name="Conference Room A",
        location_id=sample_location.id,
        capacity=10,
        flat_rate=5000,
        hourly_rate=1500,
        attendee_rate=250,
        facilities=["projector", "whiteboard"],
        active=True,
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_rooms(db_session, sample_location):
    """
    Create multiple sample rooms for testing.
    """
    rooms = [
        models.Room(
            name="Small Meeting Room",
            location_id=sample_location.id,
            capacity=4,
            flat_rate=2000,
            facilities=["tv"],
            active=True,
        ),
        models.Room(
            name="Large Conference Hall",
            location_id=sample_location.id,
            capacity=50,
            flat_rate=12000,
            hourly_rate=4000,
            facilities=["projector", "sound system"],
            active=True,
        ),
        models.Room(
            name="Board Room",
            location_id=sample_location.id,
            capacity=12,
            flat_rate=8000,
            facilities=["video conference"],
            active=False,
        ),
    ]
    for room in rooms:
        db_session.add(room)
    db_session.commit()
    for room in rooms:
        db_session.refresh(room)
    return rooms


def get_auth_header(token: str) -> dict:
    """
    Helper function to create authorization header.
    """
    return {"Authorization": f"Bearer {token}"}
