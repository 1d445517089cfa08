"""Measurement filters.

Importing this package registers every measurement kind with the filter
registry (see ``wavescope.filters.load_builtin_filters``).
"""

from wavescope.measurements import (  # noqa: F401
    area,
    burst,
    cycle,
    fwhm,
    jitter,
    levels,
    period,
    rise_fall,
    tie,
)
from wavescope.measurements.jitter import DDJTable

__all__ = ["DDJTable"]
