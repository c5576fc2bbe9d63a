"""
Root test configuration and fixtures.

Provides:
- engine / session_factory: SQLite in-memory database with every table
- datastore: SqlAlchemyDatastore seeded with the bundled permission templates
- make_org / make_profile: factories for tenant fixtures
- make_token: HS256 tokens signed with the test identity provider secret
- rsa_keypair: RSA keys for JWKS-based verification tests
- app / client: the full FastAPI application wired to the test database
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

from pto_access.app import create_app  # noqa: E402
from pto_access.auth.token_verifier import JWTIdentityProvider  # noqa: E402
from pto_access.config.permission_templates import get_permission_templates_loader  # noqa: E402
from pto_access.config.settings import AccessSettings  # noqa: E402
from pto_access.db_base import Base  # noqa: E402
from pto_access.models import Organization, Profile  # noqa: E402
from pto_access.repositories.datastore import SqlAlchemyDatastore  # noqa: E402

TEST_JWT_SECRET = "test-signing-secret-with-enough-entropy-0123456789"
TEST_ISSUER = "https://auth.test.ptoconnect.local"

ORG_A = "org-a"
ORG_B = "org-b"


@pytest.fixture
def engine():
    """SQLite in-memory engine shared across threads (StaticPool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def datastore(session_factory):
    """Datastore with the bundled permission templates seeded."""
    store = SqlAlchemyDatastore(session_factory)
    store.seed_templates(get_permission_templates_loader().get_templates())
    return store


@pytest.fixture
def make_org(session_factory):
    def _make(org_id: str = ORG_A, subscription_status: str = "active", name: str = None) -> str:
        with session_factory() as session:
            session.add(
                Organization(
                    id=org_id,
                    name=name or f"PTO {org_id}",
                    subscription_status=subscription_status,
                )
            )
            session.commit()
        return org_id
    return _make


@pytest.fixture
def make_profile(session_factory):
    def _make(
        subject_id: str = None,
        org_id: str = ORG_A,
        role: str = "volunteer",
        is_active: bool = True,
        profile_id: str = None,
    ) -> str:
        profile_id = profile_id or f"profile-{uuid.uuid4().hex[:8]}"
        with session_factory() as session:
            session.add(
                Profile(
                    id=profile_id,
                    subject_id=subject_id or f"user_{uuid.uuid4().hex[:8]}",
                    org_id=org_id,
                    role=role,
                    is_active=is_active,
                )
            )
            session.commit()
        return profile_id
    return _make


@pytest.fixture
def make_token():
    """Factory for HS256 tokens accepted by the test identity provider."""
    def _make(subject_id: str, expires_in: int = 3600, issuer: str = TEST_ISSUER, **claims) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "iss": issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        }
        payload.update(claims)
        return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")
    return _make


@pytest.fixture(scope="session")
def rsa_keypair():
    """RSA private key and PEM-encoded public key for asymmetric token tests."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_key, public_pem


@pytest.fixture
def settings():
    return AccessSettings(
        jwt_secret=TEST_JWT_SECRET,
        issuer=TEST_ISSUER,
        clock_skew_seconds=0,
        cache_soft_ttl_seconds=300.0,
        cache_stale_window_seconds=2.0,
    )


@pytest.fixture
def identity_provider(settings):
    return JWTIdentityProvider.from_settings(settings)


@pytest.fixture
def app(settings, session_factory, datastore, identity_provider):
    return create_app(
        settings=settings,
        session_factory=session_factory,
        identity_provider=identity_provider,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(make_token):
    def _headers(subject_id: str, **kwargs) -> dict:
        return {"Authorization": f"Bearer {make_token(subject_id, **kwargs)}"}
    return _headers


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: mark test as end-to-end test")
    config.addinivalue_line("markers", "security: mark test as security-focused")
