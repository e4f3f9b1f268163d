"""
Stores the current token and session, and remembers recently authenticated
accounts so that a user can keep working offline with a token that has not
yet expired.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from sweep_sync.models.account import (
    Account,
    OfflineLookup,
    Session,
    account_key,
    normalize_login_id,
)
from sweep_sync.utils.formatting import iso_timestamp
from sweep_sync.utils.tokens import DEFAULT_SKEW_SECONDS, is_token_expired, token_role

from .kv_store import KeyValueStore

log = logging.getLogger(__name__)

TOKEN_KEY = "jwt"
SESSION_KEY = "session"
ACCOUNTS_KEY = "offlineAccounts"
LAST_SESSION_KEY = "lastSession"
LAST_TOKEN_KEY = "lastJwt"
LAST_LOGIN_ID_KEY = "lastLoginId"
LAST_LOGIN_AT_KEY = "lastLoginAt"

LEGACY_KEYS = (LAST_SESSION_KEY, LAST_TOKEN_KEY, LAST_LOGIN_ID_KEY, LAST_LOGIN_AT_KEY)

Strategy = tuple[str, Callable[[], Awaitable[Account | None]]]


class CredentialVault:
    """
    Owns every credential slot in the durable store.

    Offline lookups run through an ordered list of named resolution strategies;
    the first strategy that yields a candidate wins, and the candidate is then
    checked for expiry (and, for resumption, role consistency).
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_accounts: int = 5,
        skew_seconds: int = DEFAULT_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.max_accounts = max_accounts
        self.skew_seconds = skew_seconds
        self._clock = clock

        self._token: str | None = None
        self._session: Session | None = None

    # Current session slots

    async def load(self) -> None:
        """Reads the current token and session from the store."""
        self._token = await self._store.get(TOKEN_KEY)
        self._session = self._parse_session(await self._store.get(SESSION_KEY))

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def session(self) -> Session | None:
        return self._session

    async def set_token(self, token: str | None) -> None:
        self._token = token or None
        if self._token:
            await self._store.set(TOKEN_KEY, self._token)
        else:
            await self._store.remove(TOKEN_KEY)

    async def set_session(self, session: Session | None) -> None:
        self._session = session
        if session is not None:
            await self._store.set(SESSION_KEY, session.to_storage())
        else:
            await self._store.remove(SESSION_KEY)

    async def clear_current(self) -> None:
        """Forgets the active session and token (remembered accounts stay)."""
        await self.set_session(None)
        await self.set_token(None)

    def is_expired(self, token: str | None) -> bool:
        return is_token_expired(token, self.skew_seconds, now=self._clock())

    # Remembered accounts

    async def accounts(self) -> list[Account]:
        """Returns remembered accounts, most recently used first."""
        raw = await self._store.get(ACCOUNTS_KEY, [])
        if not isinstance(raw, list):
            return []
        accounts = []
        for entry in raw:
            try:
                accounts.append(Account.model_validate(entry))
            except ValidationError as e:
                log.debug(f"Skipping unreadable remembered account: {e}")
        return accounts

    async def _save_accounts(self, accounts: list[Account]) -> None:
        await self._store.set(ACCOUNTS_KEY, [a.to_storage() for a in accounts])

    async def remember_session(
        self, session: Session, token: str, identifier: str | None = None
    ) -> Account | None:
        """
        Records a successful login for later offline use.

        The session also fills the single "last session" slot. The account list
        is upserted by `(role, login id)`, moved to the front and truncated.

        Returns:
            The remembered account, or None if the session lacks a role or login id.
        """
        if session is None or not token:
            return None

        logged_in_at = iso_timestamp(self._clock())
        await self._store.set(LAST_SESSION_KEY, session.to_storage())
        await self._store.set(LAST_TOKEN_KEY, token)
        if identifier:
            await self._store.set(LAST_LOGIN_ID_KEY, normalize_login_id(identifier))
        await self._store.set(LAST_LOGIN_AT_KEY, logged_in_at)

        role = session.role
        login_id = normalize_login_id(identifier) or session.login_id
        if not role or not login_id:
            log.debug("Session has no role or login id; not remembering account.")
            return None

        key = account_key(role, login_id)
        account = Account(
            key=key,
            role=role,
            login_id=login_id,
            name=session.name,
            session=session,
            token=token,
            last_login_at=logged_in_at,
        )
        remaining = [a for a in await self.accounts() if a.key != key]
        await self._save_accounts([account, *remaining][: self.max_accounts])
        log.debug(f"Remembered account '{key}' for offline login.")
        return account

    async def clear_offline(self) -> None:
        """Removes every remembered account and the last-session slot."""
        await self._store.remove(ACCOUNTS_KEY)
        for key in LEGACY_KEYS:
            await self._store.remove(key)
        log.info("Saved offline sessions cleared.")

    # Offline resolution

    async def resolve_offline_candidate(self, key: str | None = None) -> OfflineLookup:
        """
        Finds an account to resume while offline.

        Tries the exact account key first, then the last-session slot. Fails with
        `none`, `expired`, or `mismatch` (token role disagrees with the session).
        """
        strategies: list[Strategy] = [
            ("exact_key", lambda: self._by_key(key)),
            ("last_session", self._from_last_session),
        ]
        strategy, item = await self._first_match(strategies)
        if item is None:
            return OfflineLookup.rejected("none")
        if self.is_expired(item.token):
            return OfflineLookup.rejected("expired", strategy)

        claimed_role = token_role(item.token)
        if claimed_role and item.session.role and claimed_role != item.session.role:
            return OfflineLookup.rejected("mismatch", strategy)
        return OfflineLookup.found(item, strategy)

    async def find_offline_account(self, role: str, login_id: str) -> OfflineLookup:
        """
        Finds the remembered account for an exact role and login id.

        Falls back to the last-session slot written by older versions when it
        matches exactly. Fails with `missing`, `not_found`, or `expired`.
        """
        r = str(role or "").lower()
        lid = normalize_login_id(login_id)
        if not r or not lid:
            return OfflineLookup.rejected("missing")

        strategies: list[Strategy] = [
            ("exact_account", lambda: self._by_role_and_login(r, lid)),
            ("legacy_slot", lambda: self._from_legacy_slot(r, lid)),
        ]
        strategy, item = await self._first_match(strategies)
        if item is None:
            return OfflineLookup.rejected("not_found")
        if self.is_expired(item.token):
            return OfflineLookup.rejected("expired", strategy)
        return OfflineLookup.found(item, strategy)

    async def _first_match(
        self, strategies: list[Strategy]
    ) -> tuple[str | None, Account | None]:
        for name, resolve in strategies:
            item = await resolve()
            if item is not None:
                return name, item
        return None, None

    async def _by_key(self, key: str | None) -> Account | None:
        if not key:
            return None
        return next((a for a in await self.accounts() if a.key == key), None)

    async def _by_role_and_login(self, role: str, login_id: str) -> Account | None:
        return next(
            (
                a
                for a in await self.accounts()
                if a.role == role and a.login_id == login_id
            ),
            None,
        )

    async def _last_slot(self) -> tuple[Session | None, str | None, str]:
        session = self._parse_session(await self._store.get(LAST_SESSION_KEY))
        token = await self._store.get(LAST_TOKEN_KEY)
        login_id = normalize_login_id(await self._store.get(LAST_LOGIN_ID_KEY))
        return session, token, login_id

    async def _slot_account(
        self, session: Session, token: str, role: str, login_id: str
    ) -> Account:
        logged_in_at = await self._store.get(LAST_LOGIN_AT_KEY)
        return Account(
            key=account_key(role, login_id),
            role=role,
            login_id=login_id,
            name=session.name,
            session=session,
            token=token,
            last_login_at=logged_in_at or iso_timestamp(self._clock()),
        )

    async def _from_last_session(self) -> Account | None:
        session, token, login_id = await self._last_slot()
        if session is None or not token:
            return None
        login_id = login_id or session.login_id
        if not session.role or not login_id:
            return None
        return await self._slot_account(session, token, session.role, login_id)

    async def _from_legacy_slot(self, role: str, login_id: str) -> Account | None:
        session, token, stored_login = await self._last_slot()
        if session is None or not token:
            return None
        if session.role != role or stored_login != login_id:
            return None
        return await self._slot_account(session, token, role, login_id)

    @staticmethod
    def _parse_session(raw: Any) -> Session | None:
        if not isinstance(raw, dict):
            return None
        try:
            return Session.model_validate(raw)
        except ValidationError:
            return None
