"""Eye pattern accumulation and the views derived from it."""

from wavescope.eye import bathtub, pattern  # noqa: F401
from wavescope.eye.bathtub import integrate_from_center

__all__ = ["integrate_from_center"]
