from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import http_error, require_identity
from app.db.repo.users_repo import UsersRepo
from app.db.session import SessionLocal
from app.redemption.errors import RedemptionErrorKind
from app.services.identity import VerifiedIdentity

from .schemas import UserProfileResponse, user_as_response

router = APIRouter(tags=["users"])


@router.get("/api/users/me", response_model=UserProfileResponse)
async def get_current_user(
    identity: VerifiedIdentity = Depends(require_identity),
) -> UserProfileResponse:
    async with SessionLocal.begin() as session:
        user = await UsersRepo.get_by_id(session, identity.subject_id)
        if user is None:
            raise http_error(RedemptionErrorKind.USER_NOT_FOUND)
        return user_as_response(user)
