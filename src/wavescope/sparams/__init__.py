"""S-parameter algebra and the filters that apply it to networks in the graph."""

from wavescope.sparams import filters  # noqa: F401
from wavescope.sparams.algebra import Side, cascade, deembed

__all__ = ["Side", "cascade", "deembed"]
