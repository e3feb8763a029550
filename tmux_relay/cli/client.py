"""HTTP client for the tmux relay API."""

import json
import os
from typing import Optional
import urllib.request
import urllib.error

# Default API endpoint
DEFAULT_API_URL = "http://127.0.0.1:8421"
API_TIMEOUT = 5  # seconds; /notify waits on the Telegram send


class RelayClient:
    """Client for the tmux relay API."""

    def __init__(self, api_url: Optional[str] = None):
        """
        Initialize client.

        Args:
            api_url: Base URL for API (default: http://127.0.0.1:8421)
        """
        self.api_url = api_url or os.environ.get("TMUX_RELAY_API_URL", DEFAULT_API_URL)

    def _request(self, method: str, path: str, data: Optional[dict] = None, timeout: Optional[int] = None) -> tuple[Optional[dict], bool, bool]:
        """
        Make an HTTP request.

        Returns:
            Tuple of (response_data, success, unavailable)
            - success=True, unavailable=False: Request succeeded
            - success=False, unavailable=True: Connection error (relay unavailable)
            - success=False, unavailable=False: API error (4xx, 5xx response)
        """
        url = f"{self.api_url}{path}"
        request_timeout = timeout if timeout is not None else API_TIMEOUT

        try:
            headers = {"Content-Type": "application/json"}
            body = json.dumps(data).encode() if data is not None else None

            req = urllib.request.Request(url, data=body, headers=headers, method=method)
            with urllib.request.urlopen(req, timeout=request_timeout) as response:
                return json.loads(response.read().decode()), True, False

        except urllib.error.HTTPError:
            # API responded but with error status
            return None, False, False
        except (urllib.error.URLError, OSError):
            # Connection refused, timeout, etc. - relay unavailable
            return None, False, True

    def notify(
        self,
        notification_type: str,
        project: Optional[str],
        message: str,
        tmux_session: Optional[str] = None,
    ) -> tuple[Optional[dict], bool]:
        """
        Send a notification; the server creates the relay session.

        Returns:
            Tuple of (response_data, unavailable)
        """
        payload = {"type": notification_type, "project": project, "message": message}
        if tmux_session:
            payload["tmux_session"] = tmux_session
        data, success, unavailable = self._request("POST", "/notify", payload)
        return (data if success else None), unavailable

    def relay(self, token: str, command: str) -> tuple[Optional[dict], bool]:
        """
        Relay a command to the session for token.

        Returns:
            Tuple of (result_dict, unavailable)
        """
        data, success, unavailable = self._request(
            "POST", "/relay", {"token": token, "command": command}
        )
        return (data if success else None), unavailable

    def list_sessions(self) -> Optional[list]:
        """List live sessions."""
        data, success, _ = self._request("GET", "/sessions")
        if success and data:
            return data.get("sessions", [])
        return None
