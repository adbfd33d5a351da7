from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_roles
from ..constants import ROLE_ADMIN
from ..models.models import Profile
from ..schemas.schemas import EngineerRead, ProfileCreate, ProfileRead, ProfileUpdate, UserHistory
from ..services import users as user_service

router = APIRouter()

require_admin = require_roles(ROLE_ADMIN)


@router.get("/", response_model=List[ProfileRead])
def list_users(db: Session = Depends(get_db), _: Profile = Depends(require_admin)) -> List[Profile]:
    return user_service.list_users(db)


@router.get("/me", response_model=ProfileRead)
def read_current_user(current_user: Profile = Depends(get_current_user)) -> Profile:
    return current_user


@router.get("/engineers", response_model=List[EngineerRead])
def list_engineers(db: Session = Depends(get_db), _: Profile = Depends(require_admin)) -> List[Profile]:
    return user_service.list_engineers(db)


@router.post("/", response_model=ProfileRead, status_code=201)
def create_user(
    payload: ProfileCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_admin),
) -> Profile:
    return user_service.create_user(db, current_user.user_id, payload)


@router.patch("/{user_id}", response_model=ProfileRead)
def update_user(
    user_id: str,
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_admin),
) -> Profile:
    return user_service.update_user(db, current_user.user_id, user_id, payload)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(require_admin),
) -> Response:
    user_service.delete_user(db, current_user.user_id, user_id)
    return Response(status_code=204)


@router.get("/{user_id}/history", response_model=UserHistory)
def user_history(
    user_id: str,
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
) -> UserHistory:
    return UserHistory.model_validate(user_service.user_history(db, user_id), from_attributes=True)
