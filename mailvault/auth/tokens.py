"""OAuth 2.0 token management for a single backup run.

Performs the authorization-code grant against any provider given its
authorization and token endpoints, then keeps a bearer token valid for the
rest of the run. google-auth-oauthlib's Flow handles the code exchange and
google.oauth2.credentials handles the refresh-token grant; neither is tied
to Google endpoints when the client config names other URLs.

Tokens live in memory only. Nothing is written to disk, so every run starts
with a fresh consent step.

Refreshes are serialized: when many workers find the token expired (or get
a 401) at the same moment, exactly one of them talks to the token endpoint
and the others pick up the new token.
"""

import logging
import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from mailvault.errors import AuthError, TransientError

logger = logging.getLogger(__name__)

# Microsoft echoes back a different scope set than the one requested
# (e.g. "Mail.Read" instead of "mail.read"); oauthlib treats that as an
# error unless this is set
RELAX_SCOPE_ENV = "OAUTHLIB_RELAX_TOKEN_SCOPE"

# Loopback redirect URI registered with the OAuth application
REDIRECT_URI = "http://localhost:8080"

# Refresh this long before the provider-reported expiry
EXPIRY_MARGIN = timedelta(seconds=60)

# Consent collaborator: receives the authorization URL, returns the code
ConsentHandler = Callable[[str], str]


@contextmanager
def _relaxed_token_scope() -> Iterator[None]:
    """Accept a granted scope that differs from the requested one, for one exchange."""
    previous = os.environ.get(RELAX_SCOPE_ENV)
    os.environ[RELAX_SCOPE_ENV] = "1"
    try:
        yield
    finally:
        if previous is None:
            del os.environ[RELAX_SCOPE_ENV]
        else:
            os.environ[RELAX_SCOPE_ENV] = previous


@dataclass(frozen=True)
class Credential:
    """Snapshot of the tokens held by a TokenManager."""

    access_token: str
    refresh_token: str | None
    expiry: datetime | None

    def expires_within(self, margin: timedelta, now: datetime | None = None) -> bool:
        """True if the access token expires within `margin` from `now`.

        A credential without an expiry is treated as never expiring; a 401
        from the API still forces a refresh.
        """
        if self.expiry is None:
            return False

        now = now or datetime.now(timezone.utc)
        return self.expiry - now <= margin


def _to_credential(creds: Credentials) -> Credential:
    """Convert google-auth credentials into a Credential snapshot.

    google-auth stores expiry as a naive UTC datetime.
    """
    expiry = creds.expiry
    if expiry is not None and expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)

    return Credential(
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        expiry=expiry,
    )


class TokenManager:
    """Acquires and refreshes OAuth2 tokens.

    Example:
        tokens = TokenManager(consent=prompt_for_code)
        tokens.authorize(client_id, client_secret, auth_url, token_url,
                         "offline_access mail.read")
        headers = {"Authorization": f"Bearer {tokens.get_valid_token()}"}
    """

    def __init__(
        self,
        consent: ConsentHandler,
        expiry_margin: timedelta = EXPIRY_MARGIN,
        redirect_uri: str = REDIRECT_URI,
    ):
        """Initialize the token manager.

        Args:
            consent: Interactive step that turns an authorization URL into
                an authorization code.
            expiry_margin: Refresh tokens expiring within this window.
            redirect_uri: Redirect URI registered for the OAuth client.
        """
        self._consent = consent
        self._expiry_margin = expiry_margin
        self._redirect_uri = redirect_uri
        self._lock = threading.Lock()
        self._oauth_credentials: Credentials | None = None
        self._credential: Credential | None = None
        self._refresh_count = 0

    @property
    def credential(self) -> Credential | None:
        """The current credential, or None before authorize()."""
        return self._credential

    @property
    def refresh_count(self) -> int:
        """Number of successful refreshes since authorize()."""
        return self._refresh_count

    def authorize(
        self,
        client_id: str,
        client_secret: str,
        auth_url: str,
        token_url: str,
        scope: str,
        extra_params: dict[str, str] | None = None,
    ) -> Credential:
        """Run the authorization-code grant.

        Args:
            client_id: OAuth client ID.
            client_secret: OAuth client secret.
            auth_url: Authorization endpoint (consent page).
            token_url: Token endpoint.
            scope: Space separated scopes.
            extra_params: Extra query parameters for the authorization URL.

        Returns:
            The new Credential.

        Raises:
            AuthError: If the authorization URL can't be built, no code is
                returned, or the code exchange fails.
        """
        # Same structure as a client secrets file downloaded from a provider
        client_config = {
            "installed": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": auth_url,
                "token_uri": token_url,
                "redirect_uris": [self._redirect_uri],
            }
        }

        try:
            flow = Flow.from_client_config(
                client_config,
                scopes=scope.split(),
                redirect_uri=self._redirect_uri,
            )
            authorization_url, _state = flow.authorization_url(**(extra_params or {}))
        except Exception as e:
            raise AuthError(f"Could not start authorization: {e}") from e

        logger.debug("Requesting consent at %s", auth_url)
        code = self._consent(authorization_url)
        if not code:
            raise AuthError("No authorization code received.")

        try:
            with _relaxed_token_scope():
                flow.fetch_token(code=code)
        except Exception as e:
            raise AuthError(f"Authorization code exchange failed: {e}") from e

        creds = flow.credentials
        if not creds.token:
            raise AuthError("Token endpoint returned no access token.")

        if not creds.refresh_token:
            logger.warning(
                "No refresh token issued; the run fails once the access token expires"
            )

        with self._lock:
            self._install(creds)

        logger.info("Authorized client %s", client_id)
        return self._credential

    def get_valid_token(self) -> str:
        """Return a bearer token that is not about to expire.

        Raises:
            AuthError: If not authorized or the refresh is rejected.
            TransientError: If the token endpoint can't be reached or is
                temporarily failing; callers retry.
        """
        credential = self._require_credential()
        if not credential.expires_within(self._expiry_margin):
            return credential.access_token

        with self._lock:
            # Another worker may have refreshed while we waited for the lock
            credential = self._require_credential()
            if not credential.expires_within(self._expiry_margin):
                return credential.access_token

            return self._refresh_locked()

    def refresh(self, stale_token: str | None = None) -> str:
        """Force a refresh after the API rejected `stale_token`.

        If the current token already differs from `stale_token`, someone
        else refreshed in the meantime and that token is returned as is.

        Args:
            stale_token: The token the caller sent and got a 401 for.
                None forces an unconditional refresh.

        Returns:
            The current access token.

        Raises:
            AuthError: If not authorized or the refresh is rejected.
            TransientError: If the token endpoint can't be reached or is
                temporarily failing; callers retry.
        """
        with self._lock:
            credential = self._require_credential()
            if stale_token is not None and credential.access_token != stale_token:
                return credential.access_token

            return self._refresh_locked()

    def _require_credential(self) -> Credential:
        if self._credential is None:
            raise AuthError("Not authorized. Call authorize() first.")
        return self._credential

    def _refresh_locked(self) -> str:
        """Refresh the access token. Caller must hold self._lock."""
        creds = self._oauth_credentials
        if creds is None or not creds.refresh_token:
            raise AuthError("No refresh token available; authorize again.")

        logger.info("Refreshing access token")
        try:
            creds.refresh(Request())
        except TransportError as e:
            raise TransientError(f"Token endpoint unreachable: {e}") from e
        except RefreshError as e:
            # 5xx and throttling from the token endpoint
            if e.retryable:
                raise TransientError(f"Token endpoint unavailable: {e}") from e
            raise AuthError(f"Token refresh failed: {e}") from e

        self._refresh_count += 1
        self._install(creds)
        return self._credential.access_token

    def _install(self, creds: Credentials) -> None:
        self._oauth_credentials = creds
        self._credential = _to_credential(creds)
