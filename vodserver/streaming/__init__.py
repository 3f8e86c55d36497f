from .ranges import Full, Partial, RangeDecision, RangeRequest, Unsatisfiable, parse_range_header, resolve_range
from .responder import ContentResponder, FileSource, RangeStreamingResponse

__all__ = [
    'Full',
    'Partial',
    'Unsatisfiable',
    'RangeDecision',
    'RangeRequest',
    'parse_range_header',
    'resolve_range',
    'ContentResponder',
    'FileSource',
    'RangeStreamingResponse',
]
