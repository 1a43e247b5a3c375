import os
import logging
import requests
from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.unipile.com'


class UnipileAPIError(Exception):
    """Custom exception for Unipile API errors."""
    def __init__(self, message, status_code=None, response_data=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class UnipileClient:
    """Client for the Unipile messaging API used by social-message steps."""

    def __init__(self, api_key=None, base_url=None, timeout=30):
        self.api_key = api_key or self._get_setting('UNIPILE_API_KEY')
        self.base_url = (base_url or self._get_setting('UNIPILE_API_BASE_URL') or DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout

        if not self.api_key:
            logger.warning("No Unipile API key provided")

    def _get_setting(self, name):
        """Read a setting from the environment, then from Flask config."""
        value = os.environ.get(name)
        if value:
            return value

        try:
            if current_app:
                return current_app.config.get(name)
        except RuntimeError:
            # No application context
            pass

        return None

    def _make_request(self, method, endpoint, **kwargs):
        """Make a request to the Unipile API."""
        if not self.api_key:
            raise UnipileAPIError("No Unipile API key available")

        url = f"{self.base_url}{endpoint}"
        headers = {'X-API-KEY': self.api_key}
        # Multipart bodies must let requests set their own Content-Type
        if kwargs.get('json') is not None:
            headers['Content-Type'] = 'application/json'
        kwargs['headers'] = {**headers, **(kwargs.get('headers') or {})}
        kwargs.setdefault('timeout', self.timeout)

        try:
            response = requests.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Unipile API request failed: {str(e)}")
            if getattr(e, 'response', None) is not None:
                logger.error(f"Response status: {e.response.status_code}")
                raise UnipileAPIError(
                    f"Unipile API request failed: {str(e)}",
                    status_code=e.response.status_code,
                    response_data=e.response.text
                )
            raise UnipileAPIError(f"Unipile API request failed: {str(e)}")

    def get_user_profile(self, identifier, account_id):
        """Get a user profile by identifier (public_id or provider_id)."""
        params = {'account_id': account_id}
        return self._make_request('GET', f'/api/v1/users/{identifier}', params=params)

    def resolve_provider_id(self, profile_url_or_identifier, account_id):
        """Turn a profile URL or public identifier into the provider id chats expect."""
        identifier = public_identifier_from_url(profile_url_or_identifier)
        profile = self.get_user_profile(identifier, account_id)
        if not isinstance(profile, dict):
            return None
        return (
            profile.get('provider_id')
            or profile.get('id')
            or (profile.get('user') or {}).get('provider_id')
        )

    def start_chat_with_attendee(self, account_id, attendee_provider_id, text):
        """Start a 1:1 chat (or reuse an existing one) and send the first message."""
        files = {
            'account_id': (None, account_id),
            'attendees_ids': (None, attendee_provider_id),
            'text': (None, text),
        }
        return self._make_request("POST", "/api/v1/chats", files=files)

    def send_message(self, chat_id, message):
        """Send a message to an existing chat."""
        files = {'text': (None, message)}
        return self._make_request("POST", f"/api/v1/chats/{chat_id}/messages", files=files)


def public_identifier_from_url(value):
    """'https://www.linkedin.com/in/jane-doe/' -> 'jane-doe'; plain identifiers pass through."""
    value = (value or '').strip().rstrip('/')
    if '/in/' in value:
        value = value.split('/in/', 1)[1]
    return value.split('?', 1)[0].split('/', 1)[0]
