from conftest import make_user, headers_for


def _note(client, headers, title="Idées", content="Quelques pistes", **payload):
    response = client.post("/notes", headers=headers, json={"title": title, "content": content, **payload})
    assert response.status_code == 201, response.text
    return response.json()


def _task(client, headers, title="Tâche liée"):
    return client.post("/tasks", headers=headers, json={"title": title}).json()


def test_create_note_with_links(client, auth_headers):
    """Tester la création d'une note liée à une tâche"""
    task = _task(client, auth_headers)
    note = _note(client, auth_headers, linked_task_ids=[task["id"]])
    assert [t["id"] for t in note["linked_tasks"]] == [task["id"]]
    assert note["is_pinned"] == False


def test_create_note_with_foreign_task(client, auth_headers, db):
    """Tester qu'une tâche d'un autre utilisateur ne peut pas être liée"""
    other_headers = headers_for(make_user(db, email="other@example.com"))
    foreign = _task(client, other_headers)
    response = client.post(
        "/notes", headers=auth_headers,
        json={"title": "X", "content": "y", "linked_task_ids": [foreign["id"]]}
    )
    assert response.status_code == 404


def test_pinned_notes_first(client, auth_headers):
    """Tester que les notes épinglées sortent en premier"""
    pinned = _note(client, auth_headers, title="Épinglée", is_pinned=True)
    _note(client, auth_headers, title="Récente")

    notes = client.get("/notes", headers=auth_headers).json()["notes"]
    assert notes[0]["id"] == pinned["id"]
    assert len(notes) == 2


def test_pinned_notes_respect_page_limit(client, auth_headers):
    """Tester que plus d'épinglées que limit restent paginées, épinglées d'abord"""
    pinned_ids = {_note(client, auth_headers, title=f"P{i}", is_pinned=True)["id"] for i in range(5)}
    other_ids = {_note(client, auth_headers, title=f"N{i}")["id"] for i in range(3)}

    seen, cursor = [], None
    while True:
        params = {"limit": 2}
        if cursor:
            params["cursor"] = cursor
        data = client.get("/notes", headers=auth_headers, params=params).json()
        assert len(data["notes"]) <= 2
        seen += [note["id"] for note in data["notes"]]
        cursor = data["next_cursor"]
        if not cursor:
            break

    assert len(seen) == len(set(seen)) == 8
    assert set(seen[:5]) == pinned_ids
    assert set(seen[5:]) == other_ids


def test_link_and_unlink(client, auth_headers):
    """Tester lien / doublon / suppression du lien"""
    note = _note(client, auth_headers)
    task = _task(client, auth_headers)

    response = client.post(f"/notes/{note['id']}/links", headers=auth_headers, json={"task_id": task["id"]})
    assert response.status_code == 200
    assert len(response.json()["linked_tasks"]) == 1

    response = client.post(f"/notes/{note['id']}/links", headers=auth_headers, json={"task_id": task["id"]})
    assert response.status_code == 409

    response = client.delete(f"/notes/{note['id']}/links/{task['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["linked_tasks"] == []


def test_archive_toggle(client, auth_headers):
    """Tester l'archivage et le refus du même état"""
    note = _note(client, auth_headers)
    response = client.post(f"/notes/{note['id']}/archive", headers=auth_headers, json={"is_archived": True})
    assert response.json()["is_archived"] == True

    response = client.post(f"/notes/{note['id']}/archive", headers=auth_headers, json={"is_archived": True})
    assert response.status_code == 400

    assert client.get("/notes", headers=auth_headers).json()["notes"] == []


def test_search_notes(client, auth_headers):
    """Tester la recherche insensible à la casse"""
    _note(client, auth_headers, title="FastAPI", content="routes et dépendances")
    _note(client, auth_headers, title="Cuisine", content="recette")

    data = client.get("/notes/search?q=fastapi", headers=auth_headers).json()
    assert [n["title"] for n in data["notes"]] == ["FastAPI"]


def test_note_stats(client, auth_headers):
    """Tester les statistiques des notes"""
    task = _task(client, auth_headers)
    _note(client, auth_headers, title="Liée", linked_task_ids=[task["id"]])
    archived = _note(client, auth_headers, title="Rangée")
    client.post(f"/notes/{archived['id']}/archive", headers=auth_headers, json={"is_archived": True})

    data = client.get("/notes/stats", headers=auth_headers).json()
    assert data == {
        "total_notes": 2,
        "active_notes": 1,
        "archived_notes": 1,
        "notes_with_tasks": 1,
        "notes_without_tasks": 1,
    }


def test_batch_move_requires_target(client, auth_headers):
    """Tester le déplacement par lot"""
    note = _note(client, auth_headers)
    response = client.post("/notes/batch", headers=auth_headers, json={"note_ids": [note["id"]], "operation": "move"})
    assert response.status_code == 400

    project = client.post("/projects", headers=auth_headers, json={"name": "Cible"}).json()
    response = client.post(
        "/notes/batch", headers=auth_headers,
        json={"note_ids": [note["id"]], "operation": "move", "target_project_id": project["id"]}
    )
    assert response.status_code == 200
    assert client.get(f"/notes/{note['id']}", headers=auth_headers).json()["project_id"] == project["id"]


def test_deleting_task_removes_note_link(client, auth_headers):
    """Tester que la suppression d'une tâche retire le lien"""
    task = _task(client, auth_headers)
    note = _note(client, auth_headers, linked_task_ids=[task["id"]])
    client.delete(f"/tasks/{task['id']}", headers=auth_headers)

    data = client.get(f"/notes/{note['id']}", headers=auth_headers).json()
    assert data["linked_tasks"] == []
