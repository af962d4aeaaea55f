"""Lookup of creators and their connected platform accounts."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from cryptography.fernet import InvalidToken
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.connection import Connection
from models.user import User
from services.connectors.types import AccountRef, ConnectedUser, UserNotFoundError, normalize_platform
from services.crypto import decrypt_token

logger = logging.getLogger(__name__)


async def list_users_with_connected_accounts(db: AsyncSession) -> List[ConnectedUser]:
    """Active users with at least one connection, platforms deduplicated per user."""
    rows = (
        await db.execute(
            select(Connection.user_id, Connection.platform)
            .join(User, User.id == Connection.user_id)
            .where(User.is_active.is_(True))
            .order_by(Connection.user_id.asc(), Connection.created_at.asc())
        )
    ).all()

    platforms_by_user: Dict[str, "OrderedDict[str, None]"] = OrderedDict()
    for user_id, platform in rows:
        key = str(platform or "").strip().lower()
        if not key:
            continue
        platforms_by_user.setdefault(str(user_id), OrderedDict())[key] = None

    return [
        ConnectedUser(user_id=user_id, platforms=list(platforms.keys()))
        for user_id, platforms in platforms_by_user.items()
    ]


async def get_active_user(db: AsyncSession, user_id: str) -> User:
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None or not user.is_active:
        raise UserNotFoundError(f"User not found: {user_id}")
    return user


async def get_connected_accounts(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    account_id: Optional[str] = None,
) -> List[AccountRef]:
    """Decrypted account refs for a user, newest connection first.

    Connections whose token can no longer be decrypted are skipped with a
    warning so one stale row does not block the others.
    """
    query = select(Connection).where(Connection.user_id == user_id)
    if platform:
        query = query.where(Connection.platform == normalize_platform(platform))
    if account_id:
        query = query.where(Connection.platform_user_id == account_id)
    query = query.order_by(Connection.created_at.desc(), Connection.id.desc())

    accounts: List[AccountRef] = []
    for connection in (await db.execute(query)).scalars().all():
        try:
            access_token = decrypt_token(connection.access_token_encrypted)
        except InvalidToken:
            logger.warning(
                "connection_token_undecryptable user=%s platform=%s account=%s",
                user_id,
                connection.platform,
                connection.platform_user_id,
            )
            continue
        accounts.append(
            AccountRef(
                platform=connection.platform,
                account_id=connection.platform_user_id,
                access_token=access_token,
                handle=connection.platform_handle,
            )
        )
    return accounts
