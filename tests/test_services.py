import pytest
from datetime import date, datetime, timedelta

from conftest import make_user
from gtd.core.errors import BadRequestError
from gtd.models.journal import Journal
from gtd.models.note import Note
from gtd.models.project import Project
from gtd.models.task import Task
from gtd.models.time_entry import TimeEntry
from gtd.services.analytics import current_streak, longest_streak, overview, weekly_review
from gtd.services.pagination import decode_cursor, encode_cursor
from gtd.services.search_service import full_text_search
from gtd.services.stats_service import completion_rate, consecutive_days
from gtd.services.task_service import get_today_tasks, get_overdue_tasks, get_this_week_tasks

# mercredi
NOW = datetime(2025, 3, 12, 10, 0)


# ============ TESTS task_service.py ============

def test_today_overdue_and_week_views(db, test_user):
    """TEST 1: vues par échéance, archivées exclues"""
    db.add_all([
        Task(user_id=test_user.id, title="Aujourd'hui", status="todo", due_date=NOW.replace(hour=18)),
        Task(user_id=test_user.id, title="En retard", status="todo", due_date=NOW - timedelta(days=2)),
        Task(user_id=test_user.id, title="Fini en retard", status="done", due_date=NOW - timedelta(days=2)),
        Task(user_id=test_user.id, title="Dimanche", status="todo", due_date=datetime(2025, 3, 16, 9, 0)),
        Task(user_id=test_user.id, title="Semaine prochaine", status="todo", due_date=datetime(2025, 3, 18)),
        Task(user_id=test_user.id, title="Archivée", status="archived", due_date=NOW.replace(hour=12)),
    ])
    db.commit()

    assert [t.title for t in get_today_tasks(db, test_user.id, NOW)] == ["Aujourd'hui"]
    assert [t.title for t in get_overdue_tasks(db, test_user.id, NOW)] == ["En retard"]
    assert [t.title for t in get_this_week_tasks(db, test_user.id, NOW)] == ["Aujourd'hui", "Dimanche"]


# ============ TESTS search_service.py ============

def test_search_across_entities(db, test_user):
    """TEST 2: full_text_search() cherche dans tâches, notes, journaux et projets"""
    db.add_all([
        Task(user_id=test_user.id, title="Apprendre Python", status="todo"),
        Note(user_id=test_user.id, title="Lecture", content="Un livre sur python avancé"),
        Journal(user_id=test_user.id, date=datetime(2025, 3, 10), content="Journée python"),
        Project(user_id=test_user.id, name="Python tooling"),
        Task(user_id=test_user.id, title="Rien à voir", status="todo"),
    ])
    db.commit()

    results = full_text_search(db, test_user.id, "PYTHON")

    assert sorted(r.result_type for r in results) == ["journal", "note", "project", "task"]
    journal_hit = next(r for r in results if r.result_type == "journal")
    assert journal_hit.title == "Journal 2025-03-10"


def test_search_snippet_truncated(db, test_user):
    """TEST 3: aperçu tronqué à 100 caractères"""
    db.add(Note(user_id=test_user.id, title="Long", content="x" * 150))
    db.commit()

    hit = full_text_search(db, test_user.id, "long")[0]
    assert hit.snippet == "x" * 100 + "..."


def test_search_isolated_per_user(db, test_user):
    """TEST 4: SÉCURITÉ - user2 ne voit pas les résultats de user1"""
    other = make_user(db, email="other@example.com")
    db.add(Task(user_id=test_user.id, title="Secret", status="todo"))
    db.commit()

    assert full_text_search(db, other.id, "secret") == []


def test_search_api(client, auth_headers):
    """TEST 5: GET /search"""
    client.post("/tasks", headers=auth_headers, json={"title": "Préparer la démo", "description": "slides"})
    data = client.get("/search?q=démo", headers=auth_headers).json()
    assert data["query"] == "démo"
    assert data["results"][0]["result_type"] == "task"
    assert data["results"][0]["snippet"] == "slides"


# ============ TESTS analytics.py ============

def test_streaks():
    """TEST 6: séries en cours et plus longue série"""
    today = date(2025, 3, 12)
    days = {date(2025, 3, 11), date(2025, 3, 10), date(2025, 3, 1), date(2025, 3, 2), date(2025, 3, 3)}

    assert current_streak(days, today) == 2
    assert current_streak(days | {today}, today) == 3
    assert current_streak({date(2025, 3, 9)}, today) == 0
    assert longest_streak(days) == 3
    assert longest_streak(set()) == 0


def test_overview(db, test_user):
    """TEST 7: vue d'ensemble sur 7 jours"""
    project = Project(user_id=test_user.id, name="Site")
    db.add(project)
    db.commit()
    db.add_all([
        Task(user_id=test_user.id, title="A", status="done", priority="high", project_id=project.id,
             created_at=NOW - timedelta(days=1), completed_at=NOW - timedelta(days=1)),
        Task(user_id=test_user.id, title="B", status="done",
             created_at=NOW - timedelta(days=2), completed_at=NOW - timedelta(days=2)),
        Task(user_id=test_user.id, title="C", status="todo", created_at=NOW - timedelta(days=1)),
    ])
    db.commit()

    data = overview(db, test_user.id, days=7, now=NOW)

    assert len(data["daily_completions"]) == 7
    assert data["daily_completions"]["2025-03-11"] == 1
    assert data["current_streak"] == 2
    assert data["completed_by_priority"] == {"high": 1, "none": 1}
    assert data["completed_by_project"] == {"Site": 1, "No project": 1}
    assert data["completion_rate"] == pytest.approx(66.67)


def test_weekly_review(db, test_user):
    """TEST 8: revue de la semaine (lundi -> dimanche)"""
    monday = datetime(2025, 3, 10)
    task = Task(user_id=test_user.id, title="A", status="done", feedback="ok",
                created_at=monday, completed_at=monday.replace(hour=15))
    db.add(task)
    db.add(Task(user_id=test_user.id, title="B", status="todo", created_at=monday, due_date=monday))
    db.add(Journal(user_id=test_user.id, date=monday, content="..."))
    db.commit()
    db.add(TimeEntry(task_id=task.id, user_id=test_user.id, start_time=monday.replace(hour=14),
                     end_time=monday.replace(hour=15), duration=3600))
    db.commit()

    data = weekly_review(db, test_user.id, week_start=NOW, now=NOW)

    assert data["week_start"] == monday
    assert data["tasks_created"] == 2
    assert data["tasks_completed"] == 1
    assert data["time_spent"] == 3600
    assert data["journals_written"] == 1
    assert data["busiest_day"] == "2025-03-10"
    assert data["overdue_tasks"] == 1
    assert data["feedback_rate"] == 100.0


def test_analytics_api(client, auth_headers):
    """TEST 9: endpoints analytics"""
    assert client.get("/analytics/overview?days=14", headers=auth_headers).json()["days"] == 14
    review = client.get("/analytics/weekly-review", headers=auth_headers).json()
    assert review["tasks_created"] == 0
    assert review["busiest_day"] is None


# ============ TESTS stats / pagination ============

def test_completion_rate_rounding():
    """TEST 10: pourcentage à 2 décimales"""
    assert completion_rate(1, 3) == 33.33
    assert completion_rate(0, 0) == 0


def test_consecutive_days():
    """TEST 11: jours consécutifs de journal"""
    today = date(2025, 3, 12)
    dates = [datetime(2025, 3, 12), datetime(2025, 3, 11), datetime(2025, 3, 9)]
    assert consecutive_days(dates, today) == 2


def test_cursor_codec():
    """TEST 12: curseur opaque et curseur corrompu"""
    cursor = encode_cursor(datetime(2025, 3, 10, 8, 30), 42)
    assert decode_cursor(cursor) == (datetime(2025, 3, 10, 8, 30), 42)

    with pytest.raises(BadRequestError):
        decode_cursor("%%%")
