from datetime import datetime, timedelta

from jose import jwt

from gtd.core.config import settings
from gtd.core.security import ALGORITHM, create_access_token, decode_token, verify_token
from gtd.models.tag import Tag
from gtd.models.user import User


def test_create_and_verify_token():
    """Tester la création et la vérification d'un JWT"""
    token = create_access_token(7, "seven@example.com")
    payload = verify_token(token)
    assert payload["user_id"] == 7
    assert payload["email"] == "seven@example.com"
    assert decode_token(token) == 7


def test_expired_token_rejected():
    """Tester le refus d'un token expiré"""
    token = jwt.encode(
        {"user_id": 1, "email": "a@example.com", "type": "access", "exp": datetime.utcnow() - timedelta(minutes=1)},
        settings.JWT_SECRET,
        algorithm=ALGORITHM
    )
    assert verify_token(token) is None


def test_wrong_token_type_rejected():
    """Tester le refus d'un token qui n'est pas de type access"""
    token = jwt.encode({"user_id": 1, "type": "refresh"}, settings.JWT_SECRET, algorithm=ALGORITHM)
    assert decode_token(token) is None


def test_missing_and_invalid_token(client):
    """Tester les 401"""
    response = client.get("/tasks")
    assert response.status_code == 401
    assert response.json()["detail"] == "Missing token"

    response = client.get("/tasks", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_non_integer_user_id_claim_rejected(client):
    """Tester qu'un token signé avec un user_id non numérique donne 401"""
    token = jwt.encode(
        {"user_id": "abc", "email": "a@example.com", "type": "access",
         "exp": datetime.utcnow() + timedelta(minutes=5)},
        settings.JWT_SECRET,
        algorithm=ALGORITHM
    )
    response = client.get("/tasks", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_first_request_provisions_user(client, db):
    """Tester la création du compte local et des tags système au premier appel"""
    token = create_access_token(42, "new@example.com")
    response = client.get("/tags", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    user = db.get(User, 42)
    assert user is not None
    assert user.email == "new@example.com"
    assert db.query(Tag).filter(Tag.user_id == 42, Tag.is_system == True).count() > 0

    # deuxième appel: rien de nouveau
    client.get("/tags", headers={"Authorization": f"Bearer {token}"})
    assert db.query(User).count() == 1


def test_health(client):
    """Tester /health/z"""
    response = client.get("/health/z")
    assert response.status_code == 200
    assert response.json()["database"] == "ok"
