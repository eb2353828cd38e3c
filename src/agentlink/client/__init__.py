"""AgentLink stream client - SSE event stream and backend control calls."""

from agentlink.client.framing import FrameParser, decode_frame
from agentlink.client.sse_client import StreamClient

__all__ = [
    "FrameParser",
    "StreamClient",
    "decode_frame",
]
