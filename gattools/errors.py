"""Typed failures raised by the label engine.

Both subclass ``ValueError`` so callers that already guard input validation
with ``except ValueError`` keep working.
"""


class CalibrationError(ValueError):
    """Pixel size is missing or not positive where physical units are required."""


class ShapeMismatchError(ValueError):
    """Two rasters that must be co-registered have different dimensions."""
