import logging
import time
import requests
from flask import current_app

logger = logging.getLogger(__name__)

# Status codes worth another attempt
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class AutomationRuntimeAPIError(Exception):
    """Custom exception for automation runtime API errors."""
    def __init__(self, message, status_code=None, response_data=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class AutomationRuntimeClient:
    """Client for the external webhook-driven automation runtime (n8n-compatible REST API)."""

    def __init__(self, base_url=None, api_key=None, api_path='/api/v1', api_key_header='X-N8N-API-KEY',
                 timeout=30, max_retries=0, backoff_seconds=1.0, sleep=time.sleep):
        self.base_url = (base_url or 'http://localhost:5678').rstrip('/')
        self.api_key = api_key
        self.api_path = api_path.rstrip('/')
        self.api_key_header = api_key_header
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

        if not self.api_key:
            logger.warning("No automation runtime API key provided")

    @classmethod
    def from_config(cls, app_config=None):
        app_config = app_config if app_config is not None else current_app.config
        return cls(
            base_url=app_config.get('AUTOMATION_RUNTIME_URL'),
            api_key=app_config.get('AUTOMATION_RUNTIME_API_KEY'),
            api_path=app_config.get('AUTOMATION_RUNTIME_API_PATH', '/api/v1'),
            api_key_header=app_config.get('AUTOMATION_RUNTIME_API_KEY_HEADER', 'X-N8N-API-KEY'),
            timeout=app_config.get('RUNTIME_REQUEST_TIMEOUT', 30),
            max_retries=app_config.get('RUNTIME_MAX_RETRIES', 0),
            backoff_seconds=app_config.get('RUNTIME_RETRY_BACKOFF_SECONDS', 1.0),
        )

    def _make_request(self, method, path, authenticated=True, **kwargs):
        """Make a request, retrying connection errors and retryable status codes."""
        url = f"{self.base_url}{self.api_path if authenticated else ''}{path}"
        headers = {'Accept': 'application/json'}
        if authenticated:
            if not self.api_key:
                raise AutomationRuntimeAPIError("No automation runtime API key available")
            headers[self.api_key_header] = self.api_key
        kwargs['headers'] = {**headers, **(kwargs.get('headers') or {})}
        kwargs.setdefault('timeout', self.timeout)

        attempt = 0
        while True:
            try:
                response = requests.request(method, url, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return {}
                return response.json()
            except requests.exceptions.RequestException as e:
                response = getattr(e, 'response', None)
                status_code = response.status_code if response is not None else None
                retryable = status_code is None or status_code in RETRYABLE_STATUS_CODES
                if retryable and attempt < self.max_retries:
                    delay = self.backoff_seconds * 2 ** attempt
                    attempt += 1
                    logger.warning(f"Runtime request {method} {path} failed ({str(e)}), "
                                   f"retry {attempt}/{self.max_retries} in {delay}s")
                    self._sleep(delay)
                    continue

                logger.error(f"Automation runtime request failed: {method} {path}: {str(e)}")
                if response is not None:
                    reason = response.reason or ''
                    raise AutomationRuntimeAPIError(
                        f"Automation runtime returned {status_code} {reason}".strip(),
                        status_code=status_code,
                        response_data=response.text
                    )
                raise AutomationRuntimeAPIError(f"Automation runtime request failed: {str(e)}")

    def create_workflow(self, workflow):
        """Create a workflow from a compiled graph. Returns the runtime's workflow record."""
        return self._make_request('POST', '/workflows', json=workflow)

    def activate_workflow(self, workflow_id):
        return self._make_request('POST', f'/workflows/{workflow_id}/activate')

    def trigger_webhook(self, path, payload):
        """Invoke a workflow's webhook trigger. Webhooks are public, so no API key is sent."""
        return self._make_request('POST', f'/webhook/{path}', authenticated=False, json=payload)

    def list_executions(self, workflow_id, limit=None):
        params = {'workflowId': workflow_id}
        if limit:
            params['limit'] = limit
        return self._make_request('GET', '/executions', params=params)
