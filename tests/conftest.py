import os
import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

# Pas de thread planificateur pendant les tests, pas de Postgres non plus
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Créer engine SQLite pour tests AVANT d'importer gtd
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///./test.db"
test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# PATCH: remplacer le engine et SessionLocal du core.database AVANT d'importer l'app
import gtd.core.database
gtd.core.database.engine = test_engine
gtd.core.database.SessionLocal = TestingSessionLocal

# Maintenant importer l'app (qui utilisera notre engine SQLite)
from gtd.core.database import Base, get_db
from gtd.core.security import create_access_token
from gtd.main import app
from gtd.models.user import User


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_teardown():
    """Crée et nettoie la DB avant/après chaque test"""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


# Override la dépendance
app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    """Client de test FastAPI"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def db():
    """Session DB pour les tests"""
    db = TestingSessionLocal()
    yield db
    db.close()


def make_user(db, email="test@example.com", name="Test User", settings=None):
    user = User(email=email, name=name, settings=settings)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def headers_for(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


@pytest.fixture
def test_user(db):
    """Utilisateur déjà présent en base"""
    return make_user(db)


@pytest.fixture
def auth_headers(test_user):
    """Headers avec un JWT valide pour test_user"""
    return headers_for(test_user)
