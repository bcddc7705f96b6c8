# CropScan Agents
"""
Agent module for the scan flow.

Exports:
- Validator: all-or-nothing schema check of model output
- ScanSession: drives a scan from request to validated or manual result
"""
from .validator import validate_analysis_result, parse_analysis_result, REQUIRED_FIELDS
from .orchestrator import (
    ScanSession,
    ScanState,
    ScanProgress,
)

__all__ = [
    'validate_analysis_result',
    'parse_analysis_result',
    'REQUIRED_FIELDS',
    'ScanSession',
    'ScanState',
    'ScanProgress',
]
