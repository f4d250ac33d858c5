"""
Security module integration
Issues guest session tokens and answers delegated staff permission checks
"""

from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from tableside.core.auth import create_guest_token
from tableside.core.config import get_settings
from tableside.core.errors import DependencyError, ErrorCode, InvalidRequestError

logger = structlog.get_logger(__name__)
settings = get_settings()

MODULE_NAME = "atencion-cliente"


class TokenIssuer(Protocol):
    """Anything able to turn a session payload into a bearer token"""

    def issue(self, payload: Dict[str, Any]) -> str:
        ...


class SecurityModuleTokenIssuer:
    """Token issuer backed by the security microservice"""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def issue(self, payload: Dict[str, Any]) -> str:
        """
        Request a signed session token

        Raises:
            InvalidRequestError: the module rejected the payload (e.g. malformed DNI)
            DependencyError: the module is unreachable, timed out or answered garbage
        """
        url = f"{self.base_url}/api/v1/security/token/sign"
        body = dict(payload)
        body.setdefault("module", MODULE_NAME)

        try:
            response = self._post(url, body)
        except httpx.HTTPError as e:
            logger.error(f"Security module unreachable: {e}")
            raise DependencyError(
                ErrorCode.SECURITY_MODULE_UNAVAILABLE,
                "Security module is unavailable",
                status_code=503,
            ) from e

        if response.status_code >= 400:
            upstream_message = _error_message(response)
            logger.warning(
                "Security module rejected token request",
                upstream_status=response.status_code,
                upstream_message=upstream_message,
            )
            raise InvalidRequestError(
                ErrorCode.SECURITY_MODULE_REJECTION,
                f"Security module rejected the session: {upstream_message}",
                meta={"upstream_status": response.status_code, "upstream_message": upstream_message},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DependencyError(
                ErrorCode.SECURITY_MODULE_UNAVAILABLE,
                "Security module returned an unreadable response",
            ) from e

        token = data.get("token") or data.get("session_token") or data.get("access_token")
        if not token:
            raise DependencyError(
                ErrorCode.SECURITY_MODULE_UNAVAILABLE,
                "Security module response did not include a token",
            )
        return token

    def _post(self, url: str, body: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=body, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, json=body)


class LocalTokenIssuer:
    """Signs guest tokens with the local JWT secret (development, tests)"""

    def issue(self, payload: Dict[str, Any]) -> str:
        claims = dict(payload)
        claims.setdefault("module", MODULE_NAME)
        return create_guest_token(claims)


class SecurityPolicyClient:
    """Delegated permission checks against the security module"""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def has_permission(self, token: str, resource: str, method: str) -> bool:
        """Ask the module whether the token may perform method on resource.

        Any failure answers False: when the module is down only local
        admins get through.
        """
        url = f"{self.base_url}/api/seguridad/auth/hasPermission"
        headers = {"Authorization": f"Bearer {token}"}
        body = {"resource": resource, "method": method}
        try:
            if self._client is not None:
                response = self._client.post(url, json=body, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Error reaching security module for permission check: {e}")
            return False

        if response.status_code != 200:
            logger.warning(f"Security module answered {response.status_code} to permission check")
            return False

        try:
            return response.json().get("hasPermission") is True
        except ValueError:
            return False


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data)
    return str(data)


def get_token_issuer() -> TokenIssuer:
    """Dependency returning the configured token issuer"""
    if settings.SECURITY_SERVICE_URL:
        return SecurityModuleTokenIssuer(settings.SECURITY_SERVICE_URL, settings.SECURITY_TIMEOUT_SECONDS)
    return LocalTokenIssuer()


def get_policy_client() -> Optional[SecurityPolicyClient]:
    """Dependency returning the delegated policy client, if delegation is on"""
    if settings.DELEGATE_STAFF_PERMISSIONS and settings.SECURITY_SERVICE_URL:
        return SecurityPolicyClient(settings.SECURITY_SERVICE_URL, settings.SECURITY_TIMEOUT_SECONDS)
    return None
