"""CropScan: crop disease scan API with a manual fallback path."""

__version__ = "0.1.0"
