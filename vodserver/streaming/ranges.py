"""
HTTP Range header resolution.

Turns a raw Range header and a known content length into one of three
delivery decisions: Full, Partial(start, end) or Unsatisfiable. Only the
first range of a multi-range header is honored; multipart/byteranges
responses are not produced.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union


# One byte-range-spec: "start-end", "start-" or "-suffix"
_RANGE_SPEC = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")


@dataclass(frozen=True)
class RangeRequest:
    """A parsed range; start is None for the suffix form, end is None when open-ended"""
    unit: str
    start: Optional[int]
    end: Optional[int]


@dataclass(frozen=True)
class Full:
    pass


@dataclass(frozen=True)
class Partial:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class Unsatisfiable:
    pass


RangeDecision = Union[Full, Partial, Unsatisfiable]


def parse_range_header(header: str) -> RangeRequest:
    """
    Parse the first range of a Range header value.

    Args:
        header: Raw header value, e.g. "bytes=0-999"

    Returns:
        RangeRequest with the unit lower-cased

    Raises:
        ValueError: if the header is not of the form unit=spec[,spec...]
    """
    unit, sep, specs = header.partition("=")
    if not sep:
        raise ValueError(f"Malformed Range header: {header!r}")

    first = specs.split(",", 1)[0]
    match = _RANGE_SPEC.match(first)
    if not match:
        raise ValueError(f"Malformed byte range: {first!r}")

    start_str, end_str = match.groups()
    if not start_str and not end_str:
        raise ValueError("Byte range needs a start or a suffix length")

    return RangeRequest(
        unit=unit.strip().lower(),
        start=int(start_str) if start_str else None,
        end=int(end_str) if end_str else None,
    )


def resolve_range(header: Optional[str], size: int) -> RangeDecision:
    """
    Resolve a Range header against a content length.

    Args:
        header: Raw Range header value, or None when absent
        size: Total content length in bytes

    Returns:
        Full when no usable header is present, Partial with
        0 <= start <= end < size, or Unsatisfiable
    """
    if header is None or not header.strip():
        return Full()

    try:
        request = parse_range_header(header)
    except ValueError:
        return Unsatisfiable()

    # Unknown units are ignored rather than rejected
    if request.unit != "bytes":
        return Full()

    if request.start is None:
        suffix = request.end
        if suffix == 0 or size == 0:
            return Unsatisfiable()
        return Partial(start=max(0, size - suffix), end=size - 1)

    start = request.start
    if request.end is not None and request.end < start:
        return Unsatisfiable()

    end = size - 1 if request.end is None else min(request.end, size - 1)
    if start >= size or start > end:
        return Unsatisfiable()
    return Partial(start=start, end=end)
