"""
Transport boundary.

Wraps a transport subscription, normalizes its heterogeneous messages
(data / progress / error / complete) into ``StreamEvent`` values, and
translates positions into the transport's resume markers.
"""

from .adapter import StreamAdapter
from .normalizers import BlockStreamNormalizer, GraphQLCursorNormalizer, MessageNormalizer
from .replay import ReplayStream, ReplayTransport
from .transport import MessageCallback, RestartCallback, Transport, TransportStream

__all__ = [
    "BlockStreamNormalizer",
    "GraphQLCursorNormalizer",
    "MessageCallback",
    "MessageNormalizer",
    "ReplayStream",
    "ReplayTransport",
    "RestartCallback",
    "StreamAdapter",
    "Transport",
    "TransportStream",
]
