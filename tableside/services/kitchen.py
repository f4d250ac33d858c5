"""
Kitchen display system (KDS) integration
Sends comanda tickets and cancellations, validates worker codes
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx
import structlog

from tableside.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class KitchenResult:
    """Outcome of one call to the kitchen"""
    ok: bool
    status_code: Optional[int] = None
    detail: Optional[str] = None


class KitchenNotifier(Protocol):
    def submit_order(self, payload: Dict[str, Any]) -> KitchenResult:
        ...

    def cancel_order(self, external_id: int) -> KitchenResult:
        ...

    def validate_worker(self, worker_code: str) -> Optional[Dict[str, Any]]:
        ...


class HttpKitchenNotifier:
    """KDS client over HTTP with a bounded timeout per call.

    Never raises for transport problems: every call returns a
    ``KitchenResult`` and the caller decides whether a failure is fatal.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def submit_order(self, payload: Dict[str, Any]) -> KitchenResult:
        result, _ = self._post("/kds/inject", payload)
        return result

    def cancel_order(self, external_id: int) -> KitchenResult:
        result, _ = self._post("/kds/cancel", {"orderId": external_id})
        return result

    def validate_worker(self, worker_code: str) -> Optional[Dict[str, Any]]:
        """Resolve a worker code into ``{"id", "role"}`` or None"""
        result, staff = self._post("/staff/validate", {"workerCode": worker_code})
        if not result.ok or not isinstance(staff, dict) or not staff.get("id"):
            return None
        return {"id": str(staff["id"]), "role": staff.get("role")}

    def _post(self, path: str, body: Dict[str, Any]) -> Tuple[KitchenResult, Any]:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.post(url, json=body, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Kitchen unreachable at {url}: {e}")
            return KitchenResult(ok=False, detail=str(e)), None

        if not response.is_success:
            logger.warning(f"Kitchen answered {response.status_code} at {url}")
            return KitchenResult(ok=False, status_code=response.status_code, detail=response.text[:500]), None

        try:
            data = response.json()
        except ValueError:
            data = None
        return KitchenResult(ok=True, status_code=response.status_code), data


def get_kitchen_notifier() -> KitchenNotifier:
    """Dependency returning the configured kitchen client"""
    return HttpKitchenNotifier(settings.KITCHEN_SERVICE_URL, settings.KITCHEN_TIMEOUT_SECONDS)
