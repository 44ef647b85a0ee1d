"""Client side of the stream: frame parsing, aggregation and panel state."""

from agentstream.client.aggregator import (
    ClientEventAggregator,
    FrameResult,
    ParseError,
    SSEFrameParser,
    StreamRequestError,
    parse_frame,
    stream_chat,
)
from agentstream.client.grouping import WebsiteGroup, group_websites
from agentstream.client.panel import AutoMinimizePanel, PanelEvent, PanelState, PanelStateMachine
from agentstream.client.progress import ProgressEstimate, estimate_progress
from agentstream.client.steps import SearchStep, ThinkingStep, ToolUsage

__all__ = [
    "AutoMinimizePanel",
    "ClientEventAggregator",
    "FrameResult",
    "PanelEvent",
    "PanelState",
    "PanelStateMachine",
    "ParseError",
    "ProgressEstimate",
    "SSEFrameParser",
    "SearchStep",
    "StreamRequestError",
    "ThinkingStep",
    "ToolUsage",
    "WebsiteGroup",
    "estimate_progress",
    "group_websites",
    "parse_frame",
    "stream_chat",
]
