"""
Video streaming server with range-aware delivery, on-demand transcoding
and playback position tracking.
"""

__version__ = "0.1.0"
