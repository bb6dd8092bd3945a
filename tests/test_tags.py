import pytest

from conftest import make_user, headers_for
from gtd.core.errors import ForbiddenError
from gtd.models.tag import Tag
from gtd.services.tag_service import SYSTEM_TAGS, check_deletable, ensure_system_tags, tag_stats


def _tag(client, headers, name="lecture", **payload):
    response = client.post("/tags", headers=headers, json={"name": name, **payload})
    assert response.status_code == 201, response.text
    return response.json()


# ============ SERVICE ============

def test_ensure_system_tags_is_idempotent(db, test_user):
    """TEST 1: seed des tags système une seule fois"""
    assert ensure_system_tags(db, test_user.id) == len(SYSTEM_TAGS)
    assert ensure_system_tags(db, test_user.id) == 0

    names = {t.name for t in db.query(Tag).filter(Tag.user_id == test_user.id)}
    assert {"@computer", "@phone", "@office", "@home", "@errands", "@online"} <= names


def test_system_tag_not_deletable(db, test_user):
    """TEST 2: un tag système ne se supprime pas"""
    ensure_system_tags(db, test_user.id)
    tag = db.query(Tag).filter(Tag.user_id == test_user.id, Tag.name == "@home").one()
    with pytest.raises(ForbiddenError):
        check_deletable(db, tag)


def test_tag_stats(db, test_user):
    """TEST 3: total / system / custom / by_type"""
    ensure_system_tags(db, test_user.id)
    db.add(Tag(user_id=test_user.id, name="perso", type="custom"))
    db.commit()

    stats = tag_stats(db, test_user.id)
    assert stats["total"] == len(SYSTEM_TAGS) + 1
    assert stats["custom"] == 1
    assert stats["system"] == len(SYSTEM_TAGS)
    assert stats["by_type"]["context"] == 6


# ============ API ============

def test_create_and_duplicate_tag(client, auth_headers):
    """Tester la création et le doublon de nom -> 409"""
    data = _tag(client, auth_headers, color="#ff0000")
    assert data["type"] == "custom"
    assert data["is_system"] == False

    response = client.post("/tags", headers=auth_headers, json={"name": "lecture"})
    assert response.status_code == 409


def test_delete_used_tag_rejected(client, auth_headers):
    """Tester qu'un tag utilisé ne se supprime pas"""
    tag = _tag(client, auth_headers)
    client.post("/tasks", headers=auth_headers, json={"title": "Lire", "tag_ids": [tag["id"]]})

    response = client.delete(f"/tags/{tag['id']}", headers=auth_headers)
    assert response.status_code == 409
    assert "1 tasks" in response.json()["detail"]


def test_delete_unused_tag(client, auth_headers):
    """Tester la suppression d'un tag libre"""
    tag = _tag(client, auth_headers)
    assert client.delete(f"/tags/{tag['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/tags/{tag['id']}", headers=auth_headers).status_code == 404


def test_system_tag_type_change_forbidden(client, db):
    """Tester qu'on ne change pas le type d'un tag système"""
    user = make_user(db, email="seeded@example.com")
    ensure_system_tags(db, user.id)
    tag = db.query(Tag).filter(Tag.user_id == user.id, Tag.name == "@phone").one()
    headers = headers_for(user)

    response = client.put(f"/tags/{tag.id}", headers=headers, json={"type": "custom"})
    assert response.status_code == 403

    response = client.put(f"/tags/{tag.id}", headers=headers, json={"color": "#000000"})
    assert response.status_code == 200
    assert response.json()["color"] == "#000000"


def test_list_tags_filter_by_type(client, auth_headers):
    """Tester le filtre par type"""
    _tag(client, auth_headers, name="@bureau", type="context")
    _tag(client, auth_headers, name="perso")

    data = client.get("/tags?type=context", headers=auth_headers).json()
    assert [t["name"] for t in data["tags"]] == ["@bureau"]


def test_batch_delete_tags(client, auth_headers):
    """Tester la suppression par lot"""
    ids = [_tag(client, auth_headers, name=f"t{i}")["id"] for i in range(3)]
    response = client.post("/tags/batch-delete", headers=auth_headers, json={"tag_ids": ids})
    assert response.status_code == 200
    assert client.get("/tags", headers=auth_headers).json()["tags"] == []


def test_batch_create_tags(client, auth_headers):
    """Tester la création par lot"""
    response = client.post(
        "/tags/batch-create", headers=auth_headers,
        json={"tags": [{"name": "@maison", "type": "context"}, {"name": "perso", "color": "#112233"}]}
    )
    assert response.status_code == 201
    assert [t["name"] for t in response.json()] == ["@maison", "perso"]
    assert response.json()[0]["type"] == "context"
    assert len(client.get("/tags", headers=auth_headers).json()["tags"]) == 2


def test_batch_create_tags_duplicates(client, auth_headers):
    """Tester qu'un nom existant ou répété fait échouer tout le lot (409)"""
    _tag(client, auth_headers, name="perso")

    response = client.post(
        "/tags/batch-create", headers=auth_headers,
        json={"tags": [{"name": "nouveau"}, {"name": "perso"}]}
    )
    assert response.status_code == 409
    assert "perso" in response.json()["detail"]

    response = client.post(
        "/tags/batch-create", headers=auth_headers,
        json={"tags": [{"name": "x"}, {"name": "x"}]}
    )
    assert response.status_code == 409
    assert [t["name"] for t in client.get("/tags", headers=auth_headers).json()["tags"]] == ["perso"]
