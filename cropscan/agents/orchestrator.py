"""
Scan session orchestrator.

Drives one farmer's scan through:

    IDLE -> REQUESTING -> SUCCEEDED
                       -> FAILED -> FALLBACK_OFFERED -> RESOLVED_BY_USER

Any upstream failure (network, bad status, unparsable or invalid output)
ends in the fallback offer, so the farmer always leaves with an actionable
result. Progress is reported from real request events, not a timer.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..client import AnalysisClient
from ..errors import AnalysisInProgress, InputError, UpstreamError
from ..models import AnalysisResult, DiseaseReference, Product
from .validator import parse_analysis_result

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    FALLBACK_OFFERED = "fallback_offered"
    RESOLVED_BY_USER = "resolved_by_user"


class ScanProgress(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    DONE = "done"


Listener = Callable[["ScanSession"], None]


class ScanSession:
    def __init__(self, client: AnalysisClient, farm_id: Optional[str] = None):
        self.client = client
        self.farm_id = farm_id
        self.image: Optional[str] = None
        self.state = ScanState.IDLE
        self.progress = ScanProgress.IDLE
        self.result: Optional[AnalysisResult] = None
        self.error: Optional[str] = None
        self.error_details: Optional[str] = None
        self.candidates: List[DiseaseReference] = []
        self.products: List[Product] = []
        self._listeners: List[Listener] = []

    # -- listeners ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; call the returned function to unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Scan session listener failed")

    def _set(self, state: Optional[ScanState] = None, progress: Optional[ScanProgress] = None) -> None:
        if state is not None:
            self.state = state
        if progress is not None:
            self.progress = progress
        self._notify()

    # -- actions -----------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self.state == ScanState.REQUESTING

    def _clear_outcome(self) -> None:
        self.result = None
        self.error = None
        self.error_details = None
        self.candidates = []
        self.products = []

    def select_image(self, image_data_url: str) -> None:
        if self.busy:
            raise AnalysisInProgress()
        self.image = image_data_url
        self._clear_outcome()
        self._set(ScanState.IDLE, ScanProgress.IDLE)

    def reset(self) -> None:
        if self.busy:
            raise AnalysisInProgress()
        self.image = None
        self._clear_outcome()
        self._set(ScanState.IDLE, ScanProgress.IDLE)

    def analyze(self) -> Optional[AnalysisResult]:
        """Run the analysis; returns the validated result or None when the fallback was offered."""
        if self.busy:
            raise AnalysisInProgress()
        if not self.image:
            raise InputError("Image data is required")
        if not self.image.startswith("data:image/"):
            raise InputError("Invalid image format. Must be a base64 data URL.")

        self._clear_outcome()
        self._set(ScanState.REQUESTING, ScanProgress.SENDING)
        try:
            raw = self.client.analyze(
                self.image,
                farm_id=self.farm_id,
                on_sent=lambda: self._set(progress=ScanProgress.AWAITING_RESPONSE),
            )
            result = parse_analysis_result(raw)
        except UpstreamError as e:
            logger.warning("Analysis failed, offering fallback: %s | %s", e.error, e.details)
            self.error = e.error
            self.error_details = e.details
            self._set(ScanState.FAILED, ScanProgress.DONE)
            self.offer_fallback()
            return None
        except Exception as e:
            # leave the session usable; reset() or select_image() starts over
            self.error = str(e)
            self._set(ScanState.FAILED, ScanProgress.DONE)
            raise

        self.result = result
        self._set(ScanState.SUCCEEDED, ScanProgress.DONE)
        return result

    def offer_fallback(self) -> List[DiseaseReference]:
        if self.state != ScanState.FAILED:
            raise RuntimeError(f"fallback can only be offered after a failure, not in state {self.state.value}")
        try:
            raw = self.client.fallback_candidates()
        except UpstreamError as e:
            logger.error("Could not load fallback candidates: %s", e)
            raw = []
        self.candidates = [DiseaseReference(**c) for c in raw]
        self._set(ScanState.FALLBACK_OFFERED)
        return self.candidates

    def choose_candidate(self, disease_id: str) -> AnalysisResult:
        if self.state != ScanState.FALLBACK_OFFERED:
            raise RuntimeError(f"no fallback offered in state {self.state.value}")
        if disease_id not in {c.id for c in self.candidates}:
            raise InputError("Unknown disease selection", details=disease_id)
        self.result = AnalysisResult(**self.client.select_candidate(disease_id))
        self._set(ScanState.RESOLVED_BY_USER)
        return self.result

    def load_products(self) -> List[Product]:
        """Recommended products for the current result; empty on no match or failure."""
        if self.result is None:
            return []
        try:
            raw = self.client.products_for(self.result.diseaseName)
        except UpstreamError as e:
            logger.warning("Product lookup failed for %s: %s", self.result.diseaseName, e)
            raw = []
        self.products = [Product(**p) for p in raw]
        self._notify()
        return self.products

    def save_to_history(self) -> Dict[str, Any]:
        if self.result is None or not self.image:
            raise InputError("Nothing to save", details="analyze an image first")
        return self.client.save_scan(self.image, self.result.model_dump(), farm_id=self.farm_id)
