"""Authentication utilities for the shared Gmail mailbox."""
from dataclasses import dataclass
from typing import Optional

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from mailspend.utils.exceptions import GatewayUnauthenticated
from mailspend.utils.logger import get_logger

logger = get_logger()

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly"
]

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class MailboxCredentials:
    """OAuth client and refresh token for one mailbox.

    Passed explicitly to every gateway so that several mailbox configurations
    (e.g. a test inbox and the production inbox) can coexist in one process.
    """
    client_id: str
    client_secret: str
    refresh_token: Optional[str] = None
    token_uri: str = TOKEN_URI

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)


def get_credentials(mailbox: MailboxCredentials) -> Credentials:
    """
    Build refreshable Google credentials for the mailbox.

    The access token is obtained lazily on the first request.

    Raises:
        GatewayUnauthenticated: If the client or refresh token is missing
    """
    if not mailbox.refresh_token:
        raise GatewayUnauthenticated(
            "No mailbox refresh token configured. "
            "Run 'mailspend authorize' and set GMAIL_BACKEND_REFRESH_TOKEN."
        )
    if not mailbox.client_id or not mailbox.client_secret:
        raise GatewayUnauthenticated("Google OAuth client id/secret are not configured")

    return Credentials(
        token=None,
        refresh_token=mailbox.refresh_token,
        client_id=mailbox.client_id,
        client_secret=mailbox.client_secret,
        token_uri=mailbox.token_uri,
        scopes=SCOPES
    )


def build_client_config(client_id: str, client_secret: str) -> dict:
    """Installed-app client config in the shape google-auth-oauthlib expects."""
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": ["http://localhost"]
        }
    }


def run_authorization_flow(client_id: str, client_secret: str, port: int = 0) -> str:
    """
    One-time consent for the shared mailbox.

    Opens the browser, asks for read-only Gmail access with offline access and
    returns the refresh token to store in GMAIL_BACKEND_REFRESH_TOKEN.
    """
    if not client_id or not client_secret:
        raise GatewayUnauthenticated("Google OAuth client id/secret are not configured")

    logger.info("Starting OAuth authorization flow for the shared mailbox")
    flow = InstalledAppFlow.from_client_config(build_client_config(client_id, client_secret), SCOPES)
    # prompt=consent forces Google to issue a refresh token even on re-authorization
    creds = flow.run_local_server(port=port, access_type="offline", prompt="consent")

    if not creds.refresh_token:
        raise GatewayUnauthenticated(
            "No refresh token received. Revoke the app's access and authorize again."
        )

    logger.info("OAuth authorization successful")
    return creds.refresh_token
