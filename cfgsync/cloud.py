"""Client for the cloud profile store REST API."""

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .errors import AuthError, ConfigurationError, NetworkError, ValidationError
from .profiles.models import SettingsProfile


class CloudProfileClient:
    """
    Stores settings profiles in a remote service.

    Every endpoint answers ``{success, data?, error?}``. GET requests are
    retried with exponential backoff on network failures; writes are sent
    once.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 30.0,
                 retry_attempts: int = 3, retry_delay: float = 1.0,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise ConfigurationError("Cloud API URL is not configured")
        if not api_key:
            raise ConfigurationError("Cloud API key is not configured")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })
        self.logger = logging.getLogger('cfgsync.cloud')

    @classmethod
    def from_config(cls, config) -> Optional["CloudProfileClient"]:
        if not config.cloud_api_url:
            return None
        return cls(config.cloud_api_url, config.cloud_api_key, timeout=config.cloud_timeout,
                   retry_attempts=config.git_retry_attempts, retry_delay=config.git_retry_delay)

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f"Cloud request timed out: {method} {path}") from e
        except requests.ConnectionError as e:
            raise NetworkError(f"Cannot reach cloud profile store: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError("Cloud profile store rejected the API key")
        if response.status_code == 404:
            raise KeyError(f"Not found: {path}")
        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkError(f"Cloud profile store unavailable (HTTP {response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise ValidationError(f"Cloud profile store returned invalid JSON (HTTP {response.status_code})") from e

        if response.status_code >= 400 or not body.get("success", False):
            raise ValidationError(body.get("error") or f"Cloud request failed (HTTP {response.status_code})")

        return body.get("data")

    def _get(self, path: str) -> Any:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return self._send("GET", path)
            except NetworkError as e:
                if attempt == self.retry_attempts:
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                self.logger.warning(f"{e}, retrying in {delay:.1f}s")
                time.sleep(delay)

    def validate_api_key(self) -> bool:
        try:
            self._get("/api/v1/auth/validate")
            return True
        except AuthError:
            return False

    def list_profiles(self) -> List[SettingsProfile]:
        data = self._get("/api/v1/profiles") or []
        return [SettingsProfile.from_dict(item) for item in data]

    def get_profile(self, profile_id: str) -> SettingsProfile:
        return SettingsProfile.from_dict(self._get(f"/api/v1/profiles/{profile_id}"))

    def upload_profile(self, profile: SettingsProfile) -> SettingsProfile:
        data = self._send("POST", "/api/v1/profiles", profile.to_dict())
        self.logger.info(f"Uploaded profile '{profile.name}'")
        return SettingsProfile.from_dict(data) if data else profile

    def update_profile(self, profile: SettingsProfile) -> SettingsProfile:
        data = self._send("PUT", f"/api/v1/profiles/{profile.id}", profile.to_dict())
        return SettingsProfile.from_dict(data) if data else profile

    def delete_profile(self, profile_id: str) -> None:
        self._send("DELETE", f"/api/v1/profiles/{profile_id}")
        self.logger.info(f"Deleted cloud profile {profile_id}")
