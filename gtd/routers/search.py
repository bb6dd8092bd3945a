from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Literal

from gtd.core.database import get_db
from gtd.core.deps import get_current_user
from gtd.models.user import User
from gtd.schemas.common import MessageResponse
from gtd.schemas.search import (
    AdvancedSearchParams, AdvancedSearchResponse, SavedSearchCreate, SavedSearchResponse,
    SearchResponse, SearchResultResponse, SuggestionsResponse,
)
from gtd.services import search_service

router = APIRouter(prefix="/search", tags=["search"])


@router.get("", response_model=SearchResponse)
#recherche dans tâches/notes/journaux/projets
def search(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    results = search_service.full_text_search(db, current_user.id, q, limit)

    return SearchResponse(
        query=q,
        results=[
            SearchResultResponse(
                result_type=r.result_type,
                id=r.id,
                title=r.title,
                snippet=r.snippet
            )
            for r in results
        ]
    )


@router.post("/advanced", response_model=AdvancedSearchResponse)
def advanced(
    params: AdvancedSearchParams,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return search_service.advanced_search(db, current_user.id, params)


@router.get("/suggestions", response_model=SuggestionsResponse)
def get_suggestions(
    q: str = Query(..., min_length=1, max_length=100),
    kind: Literal["all", "tasks", "tags", "projects"] = Query("all", alias="type"),
    limit: int = Query(10, ge=1, le=20),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return search_service.suggestions(db, current_user.id, q, kind, limit)


# ============ RECHERCHES SAUVEGARDÉES ============

@router.post("/saved", response_model=SavedSearchResponse, status_code=status.HTTP_201_CREATED)
def save_search(
    data: SavedSearchCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return search_service.save_search(
        db, current_user.id, data.name, data.search_params,
        description=data.description, is_public=data.is_public
    )


@router.get("/saved", response_model=List[SavedSearchResponse])
def list_saved(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return search_service.list_saved_searches(db, current_user.id)


@router.get("/saved/{search_id}", response_model=SavedSearchResponse)
def get_saved(
    search_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return search_service.get_saved_search(db, current_user.id, search_id)


@router.post("/saved/{search_id}/run", response_model=AdvancedSearchResponse)
def run_saved(
    search_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return search_service.run_saved_search(db, current_user.id, search_id)


@router.delete("/saved/{search_id}", response_model=MessageResponse)
def delete_saved(
    search_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    search_service.delete_saved_search(db, current_user.id, search_id)
    return MessageResponse(message="Saved search deleted")
