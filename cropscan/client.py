"""
HTTP client for the CropScan API, used by the scan session.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .errors import InputError, UpstreamError

logger = logging.getLogger(__name__)

ANALYZE_PATH = "/api/analyze-crop"

# Approximate OpenAI pricing per request, USD
BASE_COST_PER_REQUEST = 0.01
IMAGE_COST_LOW = 0.00425
IMAGE_COST_HIGH = 0.00765


def estimate_api_cost(image_count: int, resolution: str = "high") -> float:
    """Rough cost of analyzing `image_count` images (prices change over time)."""
    image_cost = IMAGE_COST_LOW if resolution == "low" else IMAGE_COST_HIGH
    return image_count * (BASE_COST_PER_REQUEST + image_cost)


def _error_from_response(response: httpx.Response) -> UpstreamError:
    error = f"API request failed with status {response.status_code}"
    details: Optional[str] = response.text
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error") or error
        if "details" in body:
            details = body.get("details")
        elif isinstance(body.get("detail"), str):
            details = body["detail"]
    return UpstreamError(error, details=details)


class AnalysisClient:
    def __init__(self, base_url: str = "http://localhost:8000", http: Optional[httpx.Client] = None, token: Optional[str] = None, timeout: float = 90.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token
        self._on_sent: Optional[Callable[[], None]] = None
        self.http.event_hooks["request"].append(self._request_hook)

    def _request_hook(self, request: httpx.Request) -> None:
        if self._on_sent is not None and request.url.path == ANALYZE_PATH:
            self._on_sent()

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError("Network error", details=str(e))
        if response.is_error:
            raise _error_from_response(response)
        return response

    def analyze(self, image_data_url: str, farm_id: Optional[str] = None, on_sent: Optional[Callable[[], None]] = None) -> Dict[str, Any]:
        """POST the image for analysis and return the raw JSON body.

        The body is returned unvalidated; callers must run it through the
        result validator before showing it.
        """
        if not image_data_url:
            raise InputError("Image data is required")
        if not image_data_url.startswith("data:image/"):
            raise InputError("Invalid image format. Must be a base64 data URL.")

        body: Dict[str, Any] = {"imageBase64": image_data_url}
        if farm_id:
            body["farmId"] = farm_id

        self._on_sent = on_sent
        try:
            response = self._request("POST", ANALYZE_PATH, json=body)
        finally:
            self._on_sent = None
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Invalid response from analysis API", details=str(e))

    def analyze_batch(self, images: List[str], farm_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Analyze several angles of the same plant, one request at a time."""
        results = []
        for image in images:
            try:
                results.append({"success": True, "data": self.analyze(image, farm_id=farm_id)})
            except (InputError, UpstreamError) as e:
                results.append({"success": False, **e.to_dict()})
        return results

    def fallback_candidates(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/diseases/fallback").json().get("candidates", [])

    def select_candidate(self, disease_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/diseases/{disease_id}/select").json()

    def products_for(self, disease_name: str) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/products", params={"disease": disease_name}).json().get("products", [])

    def save_scan(self, image: str, result: Dict[str, Any], farm_id: Optional[str] = None) -> Dict[str, Any]:
        payload = {"image": image, "result": result, "farmId": farm_id}
        return self._request("POST", "/api/scan_history", json=payload).json()["saved"]

    def list_history(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/scan_history").json().get("history", [])
