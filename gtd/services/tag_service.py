"""Tag service: tags système, statistiques, garde de suppression."""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from gtd.core.errors import ConflictError, ForbiddenError
from gtd.models.tag import Tag, TagType, task_tags, note_tags
from gtd.services.ownership import get_owned_many

logger = logging.getLogger(__name__)

# ============ TAGS SYSTÈME ============

SYSTEM_TAGS = [
    # contextes GTD
    {"name": "@computer", "type": TagType.CONTEXT, "category": "context", "color": "#3B82F6", "icon": "💻",
     "description": "Needs a computer"},
    {"name": "@phone", "type": TagType.CONTEXT, "category": "context", "color": "#10B981", "icon": "📞",
     "description": "Calls to make"},
    {"name": "@office", "type": TagType.CONTEXT, "category": "context", "color": "#8B5CF6", "icon": "🏢",
     "description": "Only doable at the office"},
    {"name": "@home", "type": TagType.CONTEXT, "category": "context", "color": "#F59E0B", "icon": "🏠",
     "description": "Only doable at home"},
    {"name": "@errands", "type": TagType.CONTEXT, "category": "context", "color": "#EF4444", "icon": "🚗",
     "description": "Errands outside"},
    {"name": "@online", "type": TagType.CONTEXT, "category": "context", "color": "#06B6D4", "icon": "🌐",
     "description": "Needs an internet connection"},
    # priorités
    {"name": "urgent", "type": TagType.PRIORITY, "category": "priority", "color": "#DC2626", "icon": "🔥",
     "description": "Must be handled now"},
    {"name": "important", "type": TagType.PRIORITY, "category": "priority", "color": "#D97706", "icon": "⭐",
     "description": "Matters, not necessarily urgent"},
    {"name": "normal", "type": TagType.PRIORITY, "category": "priority", "color": "#059669", "icon": "📝",
     "description": "Everyday work"},
]


def ensure_system_tags(db: Session, user_id: int) -> int:
    """Crée les tags système manquants pour l'utilisateur, retourne le nombre créé."""
    existing = {
        name for (name,) in db.query(Tag.name).filter(Tag.user_id == user_id, Tag.is_system == True).all()
    }
    created = 0
    for entry in SYSTEM_TAGS:
        if entry["name"] in existing:
            continue
        data = dict(entry, type=entry["type"].value)
        db.add(Tag(user_id=user_id, is_system=True, **data))
        created += 1
    if created:
        db.commit()
        logger.info(f"Seeded {created} system tags for user {user_id}")
    return created


# ============ LECTURE ============

def resolve_tags(db: Session, user_id: int, tag_ids: Optional[Iterable[int]]) -> List[Tag]:
    if not tag_ids:
        return []
    return get_owned_many(db, Tag, tag_ids, user_id, label="tags")


def usage_counts(db: Session, tag_id: int) -> tuple:
    tasks = db.query(func.count()).select_from(task_tags).filter(task_tags.c.tag_id == tag_id).scalar()
    notes = db.query(func.count()).select_from(note_tags).filter(note_tags.c.tag_id == tag_id).scalar()
    return tasks or 0, notes or 0


def tag_stats(db: Session, user_id: int) -> dict:
    tags = db.query(Tag).filter(Tag.user_id == user_id).all()
    by_type = {t.value: 0 for t in TagType}
    for tag in tags:
        by_type[tag.type] = by_type.get(tag.type, 0) + 1

    system = sum(1 for tag in tags if tag.is_system)
    return {
        "total": len(tags),
        "system": system,
        "custom": len(tags) - system,
        "by_type": by_type,
    }


# ============ SUPPRESSION ============

def check_deletable(db: Session, tag: Tag) -> None:
    if tag.is_system:
        raise ForbiddenError(f"System tag '{tag.name}' cannot be deleted")
    task_count, note_count = usage_counts(db, tag.id)
    if task_count or note_count:
        raise ConflictError(
            f"Tag '{tag.name}' is still used by {task_count} tasks and {note_count} notes"
        )
