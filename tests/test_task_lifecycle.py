import pytest
from datetime import datetime, timedelta

from conftest import make_user
from gtd.core.errors import BadRequestError, NotFoundError
from gtd.models.journal import Journal
from gtd.models.task import Task, TaskStatus
from gtd.models.task_status_history import TaskStatusHistory
from gtd.models.time_entry import TimeEntry
from gtd.schemas.task import DailyPattern, MonthlyPattern, TaskBatchUpdate, TaskCreate, TaskUpdate
from gtd.services import task_lifecycle
from gtd.services.user_settings import update_user_settings
from gtd.schemas.user_settings import UserSettingsUpdate

T0 = datetime(2025, 3, 10, 9, 0, 0)


def _history(db, task_id):
    return db.query(TaskStatusHistory).filter(
        TaskStatusHistory.task_id == task_id
    ).order_by(TaskStatusHistory.id).all()


def _create(db, user, now=T0, **fields):
    fields.setdefault("title", "Écrire le rapport")
    return task_lifecycle.create_task(db, user.id, TaskCreate(**fields), now=now)


# ============ CRÉATION ============

def test_create_task_records_history(db, test_user):
    """TEST 1: create_task() ajoute une ligne d'historique 'Task created'"""
    task = _create(db, test_user)

    assert task.status == TaskStatus.IDEA.value
    history = _history(db, task.id)
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status == "idea"
    assert history[0].note == "Task created"


def test_create_task_rejects_foreign_project(db, test_user):
    """TEST 2: un projet d'un autre utilisateur est refusé (404)"""
    from gtd.models.project import Project
    other = make_user(db, email="other@example.com")
    project = Project(user_id=other.id, name="Pas à moi")
    db.add(project)
    db.commit()

    with pytest.raises(NotFoundError):
        _create(db, test_user, project_id=project.id)


# ============ STATUTS ============

def test_change_status_same_status_is_noop(db, test_user):
    """TEST 3: même statut -> aucune ligne d'historique ajoutée"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.change_status(db, task, TaskStatus.TODO, test_user.id, now=T0)

    assert len(_history(db, task.id)) == 1


def test_done_stamps_completion_and_leaving_clears_it(db, test_user):
    """TEST 4: done pose completed_at/completed_count, quitter done les efface"""
    task = _create(db, test_user, status="todo")
    done_at = T0 + timedelta(hours=1)

    task_lifecycle.change_status(db, task, TaskStatus.DONE, test_user.id, now=done_at)
    assert task.completed_at == done_at
    assert task.completed_count == 1

    task_lifecycle.change_status(db, task, TaskStatus.TODO, test_user.id, now=done_at + timedelta(minutes=5))
    assert task.completed_at is None
    assert task.completed_count == 1
    assert [h.to_status for h in _history(db, task.id)] == ["todo", "done", "todo"]


def test_done_force_stops_timer_without_accounting(db, test_user):
    """TEST 5: passer à done ferme l'entrée ouverte sans durée"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.start_timer(db, task, test_user.id, now=T0)
    task_lifecycle.change_status(db, task, TaskStatus.DONE, test_user.id, now=T0 + timedelta(minutes=30))

    entry = db.query(TimeEntry).filter(TimeEntry.task_id == task.id).one()
    assert entry.end_time == T0 + timedelta(minutes=30)
    assert entry.duration is None
    assert task.total_time_spent == 0
    assert task.is_timer_active is False


def test_restart_only_from_terminal_status(db, test_user):
    """TEST 6: restart refusé si la tâche n'est pas done/archived"""
    task = _create(db, test_user, status="todo")
    with pytest.raises(BadRequestError):
        task_lifecycle.restart_task(db, task, test_user.id, now=T0)


def test_restart_done_task(db, test_user):
    """TEST 7: restart d'une tâche done -> todo, completed_at effacé"""
    task = _create(db, test_user, status="done")
    task_lifecycle.restart_task(db, task, test_user.id, now=T0 + timedelta(days=1))

    assert task.status == "todo"
    assert task.completed_at is None
    assert _history(db, task.id)[-1].note == "Task restarted"


def test_restart_into_done_rejected(db, test_user):
    """TEST 8: on ne redémarre pas vers done"""
    task = _create(db, test_user, status="archived")
    with pytest.raises(BadRequestError):
        task_lifecycle.restart_task(db, task, test_user.id, new_status=TaskStatus.DONE, now=T0)


def test_archive_twice_rejected(db, test_user):
    """TEST 9: archiver une tâche déjà archivée -> 400"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.archive_task(db, task, test_user.id, now=T0)
    assert task.status == "archived"

    with pytest.raises(BadRequestError):
        task_lifecycle.archive_task(db, task, test_user.id, now=T0)


def test_archive_force_stops_running_timer(db, test_user):
    """TEST 9b: archiver coupe le chrono sans comptabiliser la session"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.start_timer(db, task, test_user.id, now=T0)
    task_lifecycle.archive_task(db, task, test_user.id, now=T0 + timedelta(minutes=10))

    assert task.status == "archived"
    assert task.is_timer_active is False
    assert task.timer_started_at is None
    assert task.total_time_spent == 0

    entry = db.query(TimeEntry).filter(TimeEntry.task_id == task.id).one()
    assert entry.end_time == T0 + timedelta(minutes=10)
    assert entry.duration is None


# ============ CHRONO ============

def test_idea_start_stop_yields_three_history_rows(db, test_user):
    """TEST 10: idée -> start -> stop = création, promotion, complétion"""
    task = _create(db, test_user)
    task_lifecycle.start_timer(db, task, test_user.id, now=T0)
    assert task.status == "in_progress"

    task, duration = task_lifecycle.stop_timer(db, task, test_user.id, now=T0 + timedelta(seconds=125))

    assert duration == 125
    assert task.status == "done"
    assert task.total_time_spent == 125
    history = _history(db, task.id)
    assert [(h.from_status, h.to_status) for h in history] == [
        (None, "idea"),
        ("idea", "in_progress"),
        ("in_progress", "done"),
    ]
    assert history[1].note == "Timer started"


def test_start_timer_closes_other_running_timer(db, test_user):
    """TEST 11: un seul chrono actif par utilisateur"""
    first = _create(db, test_user, title="Première", status="todo")
    second = _create(db, test_user, title="Seconde", status="todo")

    task_lifecycle.start_timer(db, first, test_user.id, now=T0)
    task_lifecycle.start_timer(db, second, test_user.id, now=T0 + timedelta(minutes=10))
    db.refresh(first)

    assert first.is_timer_active is False
    assert first.total_time_spent == 0
    assert second.is_timer_active is True
    closed = db.query(TimeEntry).filter(TimeEntry.task_id == first.id).one()
    assert closed.end_time == T0 + timedelta(minutes=10)
    assert closed.duration is None
    assert db.query(Task).filter(Task.user_id == test_user.id, Task.is_timer_active == True).count() == 1


def test_start_timer_rejections(db, test_user):
    """TEST 12: chrono déjà actif / tâche terminée -> 400"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.start_timer(db, task, test_user.id, now=T0)
    with pytest.raises(BadRequestError):
        task_lifecycle.start_timer(db, task, test_user.id, now=T0)

    done = _create(db, test_user, title="Fini", status="done")
    with pytest.raises(BadRequestError):
        task_lifecycle.start_timer(db, done, test_user.id, now=T0)


def test_pause_accumulates_floor_seconds(db, test_user):
    """TEST 13: pause additionne des secondes entières"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.start_timer(db, task, test_user.id, now=T0)
    task, first = task_lifecycle.pause_timer(db, task, now=T0 + timedelta(seconds=90, milliseconds=700))
    task_lifecycle.start_timer(db, task, test_user.id, now=T0 + timedelta(minutes=5))
    task, second = task_lifecycle.pause_timer(db, task, now=T0 + timedelta(minutes=6))

    assert first == 90
    assert second == 60
    assert task.total_time_spent == 150
    assert task.status == "todo"


def test_pause_without_timer_rejected(db, test_user):
    """TEST 14: pause sans chrono actif -> 400"""
    task = _create(db, test_user, status="todo")
    with pytest.raises(BadRequestError):
        task_lifecycle.pause_timer(db, task, now=T0)


def test_stop_timer_keeps_real_from_status(db, test_user):
    """TEST 15: l'historique de stop part du statut réel (waiting)"""
    task = _create(db, test_user, status="waiting")
    task_lifecycle.start_timer(db, task, test_user.id, now=T0)
    task_lifecycle.stop_timer(db, task, test_user.id, now=T0 + timedelta(minutes=1))

    last = _history(db, task.id)[-1]
    assert last.from_status == "waiting"
    assert last.to_status == "done"


# ============ JOURNAL À LA COMPLÉTION ============

def test_completion_updates_journal(db, test_user):
    """TEST 16: passer à done crée le journal du jour"""
    task = _create(db, test_user, status="todo", title="Relire la PR")
    task_lifecycle.change_status(db, task, TaskStatus.DONE, test_user.id, now=T0)

    journal = db.query(Journal).filter(Journal.user_id == test_user.id).one()
    assert journal.date == datetime(2025, 3, 10)
    assert "**Relire la PR**" in journal.content


def test_completion_respects_disabled_setting(db, test_user):
    """TEST 17: on_task_complete=false -> pas de journal, la tâche passe quand même"""
    update_user_settings(db, test_user.id, UserSettingsUpdate.model_validate(
        {"auto_journal_generation": {"on_task_complete": False}}
    ))
    task = _create(db, test_user, status="todo")
    task_lifecycle.change_status(db, task, TaskStatus.DONE, test_user.id, now=T0)

    assert task.status == "done"
    assert db.query(Journal).count() == 0


# ============ RÉCURRENCE ============

def test_next_due_date_monthly_clamps_to_month_end():
    """TEST 18: 31 janvier + 1 mois = 28 février"""
    pattern = MonthlyPattern(interval=1)
    assert task_lifecycle.next_due_date(pattern, datetime(2025, 1, 31, 8, 0)) == datetime(2025, 2, 28, 8, 0)


def test_set_recurring_requires_pattern(db, test_user):
    """TEST 19: is_recurring sans motif -> 400"""
    task = _create(db, test_user)
    with pytest.raises(BadRequestError):
        task_lifecycle.set_recurring(db, task, True, None, now=T0)


def test_generate_next_instance(db, test_user):
    """TEST 20: nouvelle instance todo, liée au parent, échéance décalée"""
    task = _create(db, test_user, status="done", priority="high")
    task_lifecycle.set_recurring(db, task, True, DailyPattern(interval=2, time="08:30"), now=T0)

    instance = task_lifecycle.generate_next_instance(db, task, test_user.id, now=T0)

    assert instance.id != task.id
    assert instance.parent_task_id == task.id
    assert instance.status == "todo"
    assert instance.priority == "high"
    assert instance.due_date == T0 + timedelta(days=2)
    assert instance.due_time == "08:30"
    assert _history(db, instance.id)[0].note == f"Generated from recurring task {task.id}"


def test_generate_next_instance_requires_recurring(db, test_user):
    """TEST 21: tâche non récurrente -> 400"""
    task = _create(db, test_user)
    with pytest.raises(BadRequestError):
        task_lifecycle.generate_next_instance(db, task, test_user.id, now=T0)


# ============ MISE À JOUR / LOTS ============

def test_update_task_status_goes_through_history(db, test_user):
    """TEST 22: update avec statut -> ligne d'historique"""
    task = _create(db, test_user, status="todo")
    task_lifecycle.update_task(db, task, TaskUpdate(title="Nouveau titre", status="waiting"), test_user.id, now=T0)

    assert task.title == "Nouveau titre"
    assert _history(db, task.id)[-1].note == "Status changed by update"


def test_batch_update_only_logs_real_changes(db, test_user):
    """TEST 23: batch_update n'ajoute de l'historique qu'aux tâches qui changent"""
    a = _create(db, test_user, title="A", status="todo")
    b = _create(db, test_user, title="B", status="waiting")

    count = task_lifecycle.batch_update(
        db, test_user.id, TaskBatchUpdate(task_ids=[a.id, b.id], status="waiting", priority="low"), now=T0
    )

    assert count == 2
    assert len(_history(db, a.id)) == 2
    assert len(_history(db, b.id)) == 1
    db.refresh(a)
    assert a.priority == "low"


def test_batch_delete_rejects_foreign_ids(db, test_user):
    """TEST 24: un id inconnu fait échouer tout le lot"""
    task = _create(db, test_user)
    with pytest.raises(NotFoundError):
        task_lifecycle.batch_delete(db, test_user.id, [task.id, 9999])
    assert db.get(Task, task.id) is not None


# ============ ORDRE (kanban) ============

def _column(db, user, status):
    return [t.title for t in db.query(Task).filter(
        Task.user_id == user.id, Task.status == status
    ).order_by(Task.sort_order.asc(), Task.id.asc()).all()]


def test_new_tasks_lead_their_column(db, test_user):
    """TEST 25: une nouvelle tâche passe en tête de sa colonne"""
    a = _create(db, test_user, title="A", status="todo")
    b = _create(db, test_user, title="B", status="todo")
    idea = _create(db, test_user, title="Idée")

    assert a.sort_order == 0
    assert b.sort_order == -1
    assert idea.sort_order == 0
    assert _column(db, test_user, "todo") == ["B", "A"]


def test_next_instance_leads_todo_column(db, test_user):
    """TEST 26: la nouvelle occurrence récurrente passe en tête des todo"""
    _create(db, test_user, title="Existante", status="todo")
    task = _create(db, test_user, title="Sport", status="done")
    task_lifecycle.set_recurring(db, task, True, DailyPattern(), now=T0)

    instance = task_lifecycle.generate_next_instance(db, task, test_user.id, now=T0)

    assert instance.sort_order == -1
    assert _column(db, test_user, "todo") == ["Sport", "Existante"]


def test_reorder_tasks(db, test_user):
    """TEST 27: reorder() range les tâches dans l'ordre donné"""
    a = _create(db, test_user, title="A", status="todo")
    b = _create(db, test_user, title="B", status="todo")
    c = _create(db, test_user, title="C", status="todo")

    count = task_lifecycle.reorder_tasks(db, test_user.id, [a.id, c.id, b.id], status=TaskStatus.TODO)

    assert count == 3
    assert _column(db, test_user, "todo") == ["A", "C", "B"]
    assert [a.sort_order, c.sort_order, b.sort_order] == [0, 1, 2]


def test_reorder_rejects_bad_lists(db, test_user):
    """TEST 28: doublons -> 400, tâche étrangère ou d'un autre statut -> 404"""
    a = _create(db, test_user, title="A", status="todo")
    idea = _create(db, test_user, title="Idée")
    other = make_user(db, email="other@example.com")
    foreign = _create(db, other, title="Pas à moi", status="todo")

    with pytest.raises(BadRequestError):
        task_lifecycle.reorder_tasks(db, test_user.id, [a.id, a.id])
    with pytest.raises(NotFoundError):
        task_lifecycle.reorder_tasks(db, test_user.id, [a.id, foreign.id])
    with pytest.raises(NotFoundError):
        task_lifecycle.reorder_tasks(db, test_user.id, [a.id, idea.id], status=TaskStatus.TODO)


def test_status_with_position_inserts_into_column(db, test_user):
    """TEST 29: changement de statut avec position -> insertion et renumérotation"""
    a = _create(db, test_user, title="A", status="todo")
    b = _create(db, test_user, title="B", status="todo")
    task_lifecycle.reorder_tasks(db, test_user.id, [a.id, b.id])
    idea = _create(db, test_user, title="Idée")

    task_lifecycle.update_status_with_position(db, idea, TaskStatus.TODO, test_user.id, insert_index=1, now=T0)

    assert idea.status == "todo"
    assert _column(db, test_user, "todo") == ["A", "Idée", "B"]
    history = _history(db, idea.id)
    assert history[-1].from_status == "idea"
    assert history[-1].note == "Status and position updated"


def test_status_with_position_same_status_only_moves(db, test_user):
    """TEST 30: même statut -> déplacement sans historique"""
    a = _create(db, test_user, title="A", status="todo")
    b = _create(db, test_user, title="B", status="todo")
    c = _create(db, test_user, title="C", status="todo")
    task_lifecycle.reorder_tasks(db, test_user.id, [a.id, b.id, c.id])

    task_lifecycle.update_status_with_position(db, c, TaskStatus.TODO, test_user.id, insert_index=0, now=T0)

    assert _column(db, test_user, "todo") == ["C", "A", "B"]
    assert len(_history(db, c.id)) == 1


def test_status_with_position_without_index_goes_first(db, test_user):
    """TEST 31: sans position -> en tête de la nouvelle colonne, done garde ses effets"""
    _create(db, test_user, title="Déjà faite", status="done")
    task = _create(db, test_user, title="A", status="todo")

    task_lifecycle.update_status_with_position(db, task, TaskStatus.DONE, test_user.id, now=T0)

    assert task.status == "done"
    assert task.completed_at == T0
    assert task.sort_order == -1
    assert _column(db, test_user, "done") == ["A", "Déjà faite"]
