"""
Credential store — one ``oauth_credentials`` row per (user, provider).

Every method opens its own short-lived session, so the store holds no state
between calls.  Token columns pass through ``TokenCipher`` on the way in
and out; callers only ever see plaintext ``Credential`` objects.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from connectors.schemas import Credential, TokenGrant, as_utc
from database.models import OAuthCredential

logger = logging.getLogger(__name__)

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE.
_UPSERT_INSERTS: Dict[str, Callable] = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _dialect_insert(session: AsyncSession) -> Callable:
    name = session.get_bind().dialect.name
    try:
        return _UPSERT_INSERTS[name]
    except KeyError:
        raise RuntimeError(f"Credential upsert is not supported on dialect '{name}'") from None


class CredentialStore:
    """Persistence for OAuth credentials keyed on (user_id, provider)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher

    def _to_credential(self, row: OAuthCredential) -> Credential:
        return Credential(
            user_id=row.user_id,
            provider=row.provider,
            access_token=self._cipher.decrypt(row.access_token),
            refresh_token=self._cipher.decrypt_optional(row.refresh_token),
            token_expiry=as_utc(row.token_expiry),
            scopes=(row.scopes or "").split(),
            updated_at=as_utc(row.updated_at),
        )

    @staticmethod
    def _key(user_id: str, provider: str):
        return (
            OAuthCredential.user_id == user_id,
            OAuthCredential.provider == provider,
        )

    async def _select_one(
        self, session: AsyncSession, user_id: str, provider: str
    ) -> Optional[OAuthCredential]:
        result = await session.execute(
            select(OAuthCredential).where(*self._key(user_id, provider))
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str, provider: str) -> Optional[Credential]:
        async with self._session_factory() as session:
            row = await self._select_one(session, user_id, provider)
            return self._to_credential(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Credential]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OAuthCredential)
                .where(OAuthCredential.user_id == user_id)
                .order_by(OAuthCredential.provider)
            )
            return [self._to_credential(row) for row in result.scalars().all()]

    async def upsert(
        self,
        user_id: str,
        provider: str,
        grant: TokenGrant,
        *,
        now: datetime,
    ) -> Credential:
        """
        Insert or replace the credential for (user_id, provider) in one
        statement.  A grant without a refresh token keeps the stored one.
        """
        async with self._session_factory() as session:
            insert = _dialect_insert(session)
            stmt = insert(OAuthCredential).values(
                id=str(uuid.uuid4()),
                user_id=user_id,
                provider=provider,
                access_token=self._cipher.encrypt(grant.access_token),
                refresh_token=self._cipher.encrypt_optional(grant.refresh_token),
                token_expiry=grant.expiry(now),
                scopes=" ".join(grant.scopes),
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "provider"],
                set_={
                    "access_token": stmt.excluded.access_token,
                    "refresh_token": func.coalesce(
                        stmt.excluded.refresh_token, OAuthCredential.refresh_token
                    ),
                    "token_expiry": stmt.excluded.token_expiry,
                    "scopes": stmt.excluded.scopes,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
            credential = self._to_credential(await self._select_one(session, user_id, provider))
            await session.commit()

        logger.info("Stored %s credential for user %s", provider, user_id)
        return credential

    async def update_tokens(
        self,
        user_id: str,
        provider: str,
        grant: TokenGrant,
        *,
        now: datetime,
    ) -> Optional[Credential]:
        """
        Apply a refresh result in place.  The refresh token and scopes are
        only overwritten when the provider reissued them.  Returns None if
        the row disappeared (user disconnected mid-refresh).
        """
        values = {
            "access_token": self._cipher.encrypt(grant.access_token),
            "token_expiry": grant.expiry(now),
            "updated_at": now,
        }
        if grant.refresh_token:
            values["refresh_token"] = self._cipher.encrypt(grant.refresh_token)
        if grant.scopes:
            values["scopes"] = " ".join(grant.scopes)

        async with self._session_factory() as session:
            result = await session.execute(
                update(OAuthCredential)
                .where(*self._key(user_id, provider))
                .values(**values)
            )
            if result.rowcount == 0:
                await session.rollback()
                return None
            credential = self._to_credential(await self._select_one(session, user_id, provider))
            await session.commit()
            return credential

    async def delete(self, user_id: str, provider: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(OAuthCredential).where(*self._key(user_id, provider))
            )
            await session.commit()
        return result.rowcount > 0
