"""
Default value serializer for snapshots.

Turns the values passed to an assertion into the canonical text that gets
stored and diffed. Callers can plug in their own serializer; the engine never
looks at value types itself.
"""
from __future__ import annotations

import pprint
import sys
from typing import Any

# Optional numpy import - only used to render arrays in full
try:
    import numpy as np
    HAS_NUMPY = True
except ImportError:
    np = None  # type: ignore
    HAS_NUMPY = False

PPRINT_WIDTH = 88


def _is_numpy_array(obj: Any) -> bool:
    """Check if object is a numpy array without requiring numpy import."""
    if HAS_NUMPY and np is not None:
        return isinstance(obj, np.ndarray)
    obj_type = type(obj)
    return obj_type.__module__ == "numpy" and obj_type.__name__ == "ndarray"


def format_value(value: Any) -> str:
    """Render a single value."""
    if isinstance(value, str):
        return value
    if _is_numpy_array(value) and HAS_NUMPY:
        # threshold disables the "..." summarisation of large arrays
        body = np.array2string(value, threshold=sys.maxsize, separator=", ")
        return f"array({body}, dtype={value.dtype})"
    return pprint.pformat(value, width=PPRINT_WIDTH, sort_dicts=True)


def serialize(*values: Any) -> str:
    """Render every value on its own line(s), each followed by a newline."""
    return "".join(format_value(value) + "\n" for value in values)
