"""
Broker Module

The four meta-tools, the dispatcher behind call_operation and the
response envelopes every call is answered with.
"""

from .dispatcher import Dispatcher
from .envelope import ResponseEnvelope, build_envelope, sanitize_error
from .host import BrokerHost
from .outcome import (
    HandlerFailure,
    InvocationOutcome,
    InvocationRequest,
    Success,
    UnknownRoute,
    ValidationFailure,
)
from .tools import BROKER_TOOL_NAMES, BrokerToolSet, CategoryIndex, generate_broker_tools

__all__ = [
    'BROKER_TOOL_NAMES',
    'BrokerHost',
    'BrokerToolSet',
    'CategoryIndex',
    'Dispatcher',
    'HandlerFailure',
    'InvocationOutcome',
    'InvocationRequest',
    'ResponseEnvelope',
    'Success',
    'UnknownRoute',
    'ValidationFailure',
    'build_envelope',
    'generate_broker_tools',
    'sanitize_error',
]
