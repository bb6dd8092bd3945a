"""Garde de propriété commune à toutes les entités.

Une ligne absente et une ligne appartenant à un autre utilisateur donnent la
même erreur, pour ne pas révéler son existence.
"""

from typing import Iterable, List, Type, TypeVar
from sqlalchemy.orm import Session

from gtd.core.errors import NotFoundError

T = TypeVar("T")


def get_owned(db: Session, model: Type[T], obj_id: int, user_id: int, label: str = None) -> T:
    obj = db.get(model, obj_id)
    if obj is None or obj.user_id != user_id:
        raise NotFoundError(f"{label or model.__name__} not found")
    return obj


def get_owned_many(db: Session, model: Type[T], ids: Iterable[int], user_id: int, label: str = None) -> List[T]:
    wanted = set(ids)
    if not wanted:
        return []
    rows = db.query(model).filter(model.id.in_(wanted), model.user_id == user_id).all()
    if len(rows) != len(wanted):
        raise NotFoundError(f"Some {label or model.__name__.lower() + 's'} not found")
    return rows
