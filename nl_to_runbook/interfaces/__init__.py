"""
Abstract interfaces for extending nl_to_runbook.
"""

from .downstream import DownstreamClient, DownstreamRequest, DownstreamResponse, TransportError

__all__ = [
    'DownstreamClient',
    'DownstreamRequest',
    'DownstreamResponse',
    'TransportError',
]
