"""
Error taxonomy for the crop scan flow.

Every error carries a short reason string (`error`) and optional diagnostic
text (`details`), which is also the JSON body shape returned by the API.
"""
from typing import Any, Dict, Optional


class CropScanError(Exception):
    status_code = 500

    def __init__(self, error: str, details: Optional[str] = None):
        super().__init__(error if not details else f"{error}: {details}")
        self.error = error
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details:
            body["details"] = self.details
        return body


class InputError(CropScanError):
    """Bad or missing image. Raised before any network call."""
    status_code = 400


class InvalidFormat(InputError):
    pass


class SizeExceeded(InputError):
    pass


class DecodeError(InputError):
    pass


class ConfigurationError(CropScanError):
    """Server credential missing. Details stay in the server log."""
    status_code = 500


class UpstreamError(CropScanError):
    """Inference service failed or returned unusable output."""
    status_code = 502


class ReferenceLookupError(CropScanError, LookupError):
    """Document store read failed."""
    status_code = 503


class AnalysisInProgress(CropScanError):
    status_code = 409

    def __init__(self, error: str = "Analysis already in progress", details: Optional[str] = None):
        super().__init__(error, details)
