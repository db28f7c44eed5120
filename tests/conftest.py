"""
Wellness Loans - Test Configuration and Fixtures
"""
import os
from datetime import datetime
from typing import Generator
import pytest
from faker import Faker
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set testing environment before the app reads its settings
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['MQTT_ENABLED'] = 'false'
os.environ['SCHEDULER_ENABLED'] = 'false'
os.environ['TIMEZONE'] = 'America/Bogota'

from app.main import app
from app.config import LoanPolicy, get_loan_policy
from app.database import Base, get_db
from app.models.enums import UserRole, ResourceStatus
from app.models.resource import Resource, ResourceCategory
from app.models.user import User
from app.services.auth import get_password_hash, create_access_token
from app.utils.timezone import LOCAL_TZ

fake = Faker()

# Monday morning on campus; services accept an explicit `now`
NOW = LOCAL_TZ.localize(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture(scope='function')
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def policy() -> LoanPolicy:
    return LoanPolicy()


@pytest.fixture
def client(db_session: Session, policy: LoanPolicy) -> Generator[TestClient, None, None]:
    """Test client bound to the test session; lifespan (MQTT, scheduler) is not started"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_loan_policy] = lambda: policy
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db: Session, role: UserRole, password: str) -> User:
    user = User(
        user_fname=fake.first_name(),
        user_lname=fake.last_name(),
        user_email=fake.unique.email(),
        user_password_hash=get_password_hash(password),
        student_code=fake.bothify('20######') if role == UserRole.STUDENT else None,
        user_role=role.value,
        is_blocked=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db_session: Session) -> User:
    return _make_user(db_session, UserRole.STUDENT, 'studentpassword123')


@pytest.fixture
def other_student(db_session: Session) -> User:
    return _make_user(db_session, UserRole.STUDENT, 'studentpassword123')


@pytest.fixture
def third_student(db_session: Session) -> User:
    return _make_user(db_session, UserRole.STUDENT, 'studentpassword123')


@pytest.fixture
def student_factory(db_session: Session):
    """Build any number of extra students"""
    def make() -> User:
        return _make_user(db_session, UserRole.STUDENT, 'studentpassword123')
    return make


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return _make_user(db_session, UserRole.ADMIN, 'adminpassword123')


@pytest.fixture
def category_factory(db_session: Session):
    """Build categories; defaults are a low-risk, no-approval category"""
    def make(**overrides) -> ResourceCategory:
        fields = dict(
            name=fake.unique.word().capitalize(),
            base_wellness_hours=2,
            hourly_factor=0.5,
            is_low_risk=True,
            requires_approval=False,
            max_loan_days=5,
            max_per_student=3,
        )
        fields.update(overrides)
        category = ResourceCategory(**fields)
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category
    return make


@pytest.fixture
def resource_factory(db_session: Session, category_factory):
    def make(category: ResourceCategory = None, status: ResourceStatus = ResourceStatus.AVAILABLE, **overrides) -> Resource:
        category = category or category_factory()
        resource = Resource(
            category_id=category.category_id,
            name=overrides.pop('name', f"{fake.color_name()} {fake.word()}"),
            status=status.value,
            **overrides
        )
        db_session.add(resource)
        db_session.commit()
        db_session.refresh(resource)
        return resource
    return make


@pytest.fixture
def low_risk_category(category_factory) -> ResourceCategory:
    return category_factory()


@pytest.fixture
def approval_category(category_factory) -> ResourceCategory:
    return category_factory(is_low_risk=False, requires_approval=True)


@pytest.fixture
def resource(resource_factory, low_risk_category) -> Resource:
    return resource_factory(category=low_risk_category)


def token_headers(user: User) -> dict:
    token = create_access_token({'sub': str(user.user_id), 'role': user.user_role})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def auth_headers(student: User) -> dict:
    """Authentication headers for the student"""
    return token_headers(student)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return token_headers(admin_user)


@pytest.fixture
def headers_for():
    """Build auth headers for any user"""
    return token_headers


@pytest.fixture
def now() -> datetime:
    return NOW
