import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import PersistenceError
from ..models import User
from ..schemas import UserCreate, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["users"],
)


async def _get_by_username(db: AsyncSession, username: str) -> User | None:
    res = await db.execute(select(User).where(User.username == username))
    return res.scalar_one_or_none()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, db: AsyncSession = Depends(get_db)):
    """
    Create a user, or return the existing one with the same username.
    """
    try:
        user = await _get_by_username(db, payload.username)
        if user:
            return user

        user = User(username=payload.username)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race against a concurrent insert of the same username
            await db.rollback()
            user = await _get_by_username(db, payload.username)
            if not user:
                raise
            return user

        logger.info(f"Created user {user.id} ({user.username})")
        return user

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating user {payload.username}: {e}")
        raise PersistenceError(e, "failed to create or fetch user")


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
