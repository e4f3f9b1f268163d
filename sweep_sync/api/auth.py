"""
Handles signing in against the remote service, with a fallback to remembered
accounts when the device is offline.
"""

import logging
from typing import TYPE_CHECKING, Any

from sweep_sync.core.connectivity import ConnectivityMonitor
from sweep_sync.core.events import SyncEvents
from sweep_sync.exceptions import (
    AuthenticationError,
    AuthExpiredError,
    NetworkError,
    OfflineLoginError,
)
from sweep_sync.models.account import Account, Role, Session
from sweep_sync.storage.credentials import CredentialVault
from sweep_sync.utils.tokens import token_role

if TYPE_CHECKING:
    from .client import NetworkGateway

log = logging.getLogger(__name__)

# Role -> (login endpoint, name of the identifier field in the request body)
LOGIN_ROUTES: dict[Role, tuple[str, str]] = {
    Role.USER: ("/auth/user/login", "email"),
    Role.VENDOR: ("/auth/vendor/login", "code"),
    Role.ADMIN: ("/auth/admin/login", "email"),
}
SIGNUP_PATH = "/auth/user/signup"

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


def _parse_role(role: Role | str) -> Role:
    try:
        return Role(str(getattr(role, "value", role)).lower())
    except ValueError as e:
        raise AuthenticationError(
            f"Unknown role '{role}'. Use one of: user, vendor, admin."
        ) from e


def session_from_login(role: Role, response: dict[str, Any]) -> Session:
    """Builds the session for a role from a login response body."""
    name = response.get("name") or ""
    if role is Role.USER:
        return Session(role=role.value, user_id=response.get("userId"), name=name)
    if role is Role.VENDOR:
        return Session(role=role.value, vendor_id=response.get("vendorId"), name=name)
    return Session(role=role.value, admin_email=response.get("adminEmail"), name=name)


class Authenticator:
    """
    Manages the authentication flow for the client.
    """

    def __init__(
        self,
        gateway: "NetworkGateway",
        vault: CredentialVault,
        monitor: ConnectivityMonitor,
        events: SyncEvents | None = None,
    ):
        """
        Initializes the authenticator.

        Args:
            gateway: Used for the online login and signup calls.
            vault: Where tokens, sessions and remembered accounts live.
            monitor: Decides between online login and offline fallback.
            events: Hooks used to announce an expired session.
        """
        self._gateway = gateway
        self._vault = vault
        self._monitor = monitor
        self._events = events or SyncEvents()

    @property
    def session(self) -> Session | None:
        return self._vault.session

    async def login(self, role: Role | str, login_id: str, password: str) -> Session:
        """
        Signs in as `role`.

        Online, the credentials are checked by the remote service and the
        resulting account is remembered. Offline (or when the login request
        cannot reach the service), a remembered account with a still-valid
        token is resumed instead.

        Raises:
            AuthenticationError: Missing credentials or a response without a token.
            OfflineLoginError: Offline and no usable remembered account.
            RemoteError: The service rejected the credentials.
        """
        role = _parse_role(role)
        login_id = (login_id or "").strip()
        if not login_id:
            raise AuthenticationError("A login id is required.")

        if not self._monitor.is_online:
            return await self._login_offline(role, login_id)

        if not password:
            raise AuthenticationError("A password is required.")

        path, id_field = LOGIN_ROUTES[role]
        log.info(f"Authenticating as {role.value}: {login_id}")
        try:
            result = await self._gateway.post(
                path, {id_field: login_id, "password": password}
            )
        except NetworkError:
            log.info("[yellow]Login request failed to reach the service.[/yellow]")
            return await self._login_offline(role, login_id)

        response = result.value if isinstance(result.value, dict) else {}
        token = response.get("token")
        if not token:
            raise AuthenticationError("Login response did not include a token.")

        session = session_from_login(role, response)
        await self._install(session, token)
        await self._vault.remember_session(session, token, login_id)
        log.info(f"Successfully authenticated as: {session.display_name or login_id}")
        return session

    async def _login_offline(self, role: Role, login_id: str) -> Session:
        lookup = await self._vault.find_offline_account(role.value, login_id)
        if not lookup.ok:
            raise OfflineLoginError(lookup.reason or "not_found")
        return await self._resume(lookup.item)

    async def resume_offline(self, key: str | None = None) -> Session:
        """
        Continues as a remembered account without contacting the service.

        Args:
            key: The account key ("role:login id"); defaults to the last session.

        Raises:
            OfflineLoginError: With reason `none`, `expired`, or `mismatch`.
        """
        lookup = await self._vault.resolve_offline_candidate(key)
        if not lookup.ok:
            raise OfflineLoginError(lookup.reason or "none")
        return await self._resume(lookup.item)

    async def _resume(self, account: Account) -> Session:
        await self._install(account.session, account.token)
        log.info(f"Offline login successful: {account.key}")
        return account.session

    async def _install(self, session: Session, token: str) -> None:
        await self._vault.set_token(token)
        await self._vault.set_session(session)

    async def signup(self, name: str, email: str, password: str) -> Any:
        """
        Creates a user account. Requires connectivity.

        Raises:
            NetworkError: The device is offline.
        """
        if not self._monitor.is_online:
            raise NetworkError("Offline. Sign up requires internet.")
        if not (name.strip() and email.strip() and password):
            raise AuthenticationError("Name, email and password are all required.")
        result = await self._gateway.post(
            SIGNUP_PATH, {"name": name.strip(), "email": email.strip(), "password": password}
        )
        log.info(f"Account created for {email.strip()}.")
        return result.value

    def _token_problem(self) -> str | None:
        token = self._vault.token
        session = self._vault.session
        if self._vault.is_expired(token):
            return "expired"
        claimed = token_role(token)
        if session is not None and claimed and session.role and claimed != session.role:
            return "mismatch"
        return None

    async def restore(self) -> Session | None:
        """
        Reloads the persisted session at startup.

        A session whose token is still valid is re-remembered for offline use.
        One whose token has expired is ended and announced.

        Raises:
            AuthExpiredError: The persisted token expired or disagrees with its session.
        """
        await self._vault.load()
        session = self._vault.session
        if session is None or not self._vault.token:
            return None
        problem = self._token_problem()
        if problem:
            await self._expire()
            raise AuthExpiredError(f"{SESSION_EXPIRED_MESSAGE} ({problem})")
        await self._vault.remember_session(session, self._vault.token)
        return session

    async def ensure_valid(self) -> Session:
        """
        Returns the active session, ending it if its token is no longer usable.

        Raises:
            AuthExpiredError: No session, or the token expired or disagrees with it.
        """
        session = self._vault.session
        if session is None or not self._vault.token:
            raise AuthExpiredError("Not signed in.")
        problem = self._token_problem()
        if problem:
            await self._expire()
            raise AuthExpiredError(f"{SESSION_EXPIRED_MESSAGE} ({problem})")
        return session

    async def _expire(self) -> None:
        log.warning(f"[yellow]{SESSION_EXPIRED_MESSAGE}[/yellow]")
        await self._vault.clear_current()
        await self._events.session_expired(SESSION_EXPIRED_MESSAGE)

    async def logout(self) -> None:
        """Ends the active session. Remembered accounts are kept."""
        await self._vault.clear_current()
        log.info("Signed out.")
