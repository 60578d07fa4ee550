"""
Google OAuth2 authentication and credential management.

Loads, refreshes and stores the credentials the Sheets backend needs. Non-interactive
refresh happens on whichever thread asks for credentials; the browser sign-in flow is
only started through :meth:`AuthManager.authenticate`.
"""

import logging
import threading
from typing import Optional

import google.auth.exceptions
import google.auth.transport.requests
import google.oauth2.credentials
import google_auth_oauthlib.flow

from ..settings.lib import SettingsAPI
from ..status import status

DEFAULT_SCOPES = ['https://www.googleapis.com/auth/spreadsheets', ]


class AuthExpiredError(Exception):
    """Raised when credentials have expired and require interactive refresh."""
    pass


class AuthManager:
    """Manages OAuth2 credentials with thread-safe refresh.

    Args:
        settings (SettingsAPI): Provides the client secret and the credentials path.
    """

    def __init__(self, settings: SettingsAPI) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._creds: Optional[google.oauth2.credentials.Credentials] = None

    def get_valid_credentials(self) -> google.oauth2.credentials.Credentials:
        """
        Return valid credentials without any user interaction.

        Raises:
            AuthExpiredError: if no credentials exist or a full interactive flow is required.
            status.AuthenticationExceptionException: if an auto-refresh fails.
            status.CredsInvalidException: if stored credentials are corrupt.
        """
        with self._lock:
            if self._creds is None:
                creds_path = self.settings.creds_path
                if not creds_path.exists():
                    raise AuthExpiredError('No credentials found; interactive authentication required')
                try:
                    self._creds = google.oauth2.credentials.Credentials.from_authorized_user_file(
                        str(creds_path), scopes=DEFAULT_SCOPES)
                except ValueError as ex:
                    # Credentials file invalid: remove it so the next sign-in starts clean
                    creds_path.unlink(missing_ok=True)
                    raise status.CredsInvalidException('Failed to load credentials') from ex

            if self._creds.expired:
                if self._creds.refresh_token:
                    try:
                        self._creds.refresh(google.auth.transport.requests.Request())
                        self.save_creds(self._creds)
                    except google.auth.exceptions.RefreshError as ex:
                        raise status.AuthenticationExceptionException(
                            'Failed to auto-refresh credentials') from ex
                else:
                    raise AuthExpiredError('Credentials expired; interactive authentication required')

            return self._creds

    def authenticate(self) -> google.oauth2.credentials.Credentials:
        """
        Run the browser OAuth flow and store the resulting credentials.

        Raises:
            status.ClientSecretNotFoundException: If the client secret file is not found.
            status.ClientSecretInvalidException: If the client secret misses required fields.
            status.AuthenticationExceptionException: If authentication fails or is cancelled.
        """
        if not self.settings.client_secret_path.exists():
            raise status.ClientSecretNotFoundException
        self.settings.validate_client_secret()
        client_config = self.settings.get_section('client_secret')

        logging.debug('Starting new OAuth flow...')
        flow = google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(client_config, scopes=DEFAULT_SCOPES)
        try:
            creds = flow.run_local_server(port=0)
        except Exception as ex:
            raise status.AuthenticationExceptionException(f'OAuth flow failed: {ex}') from ex

        if not creds or not creds.token:
            raise status.AuthenticationExceptionException('Authentication was cancelled or no credentials obtained.')

        with self._lock:
            self.save_creds(creds)
            self._creds = creds
        return creds

    def save_creds(self, creds: google.oauth2.credentials.Credentials) -> None:
        """
        Save OAuth2 credentials to the configured token file.
        """
        with open(self.settings.creds_path, 'w', encoding='utf-8') as token_file:
            token_file.write(creds.to_json())
        logging.debug(f'Credentials saved to {self.settings.creds_path}.')

    def sign_out(self) -> None:
        """
        Delete stored credentials to sign out the user.
        """
        with self._lock:
            self._creds = None
            creds_path = self.settings.creds_path
            if creds_path.exists():
                logging.debug(f'Deleting {creds_path}...')
                creds_path.unlink()
                logging.debug('Successfully signed out.')
            else:
                logging.debug('No credentials file found. No action taken.')
