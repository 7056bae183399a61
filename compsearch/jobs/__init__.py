"""
Background jobs for the compensation search service.

Jobs:
- streamer: bulk sync at startup, then change capture until stopped

Usage:
    python -m compsearch.jobs.streamer
"""

from compsearch.jobs.streamer import run_streamer, start_streaming

__all__ = [
    'run_streamer',
    'start_streaming',
]
