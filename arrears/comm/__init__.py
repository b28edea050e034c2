"""Dispatch transition events, persistence and outbound tagging."""

from arrears.comm.event_sink import TransitionSink, read_transitions
from arrears.comm.events import DispatchState, DispatchTransition, TransitionStream
from arrears.comm.outbound_tags import generate_message_id

__all__ = [
    "DispatchState",
    "DispatchTransition",
    "TransitionStream",
    "TransitionSink",
    "read_transitions",
    "generate_message_id",
]
