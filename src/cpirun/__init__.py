"""Client for calling provider plugins over a one-process-per-call JSON protocol.

The plugin is started once per call, given the request on stdin, and prints its
response on stdout. See `CallRunner` for the entry point.
"""

from .descriptor import PluginDescriptor, load_descriptor
from .errors import (
    CallConstructionError,
    CallTransportError,
    CpiRunError,
    PluginCallError,
    ProcessExecutionError,
)
from .invocation import (
    DirectStrategy,
    InvocationStrategy,
    ProcessSpec,
    ShellWrappedStrategy,
    select_strategy,
)
from .process import CmdResult, CmdRunner, SubprocessCmdRunner
from .protocol import (
    CallContext,
    CallError,
    CallOutput,
    JSONValue,
    decode_output,
    encode_request,
)
from .runner import CallRunner

__all__ = [
    "CallConstructionError",
    "CallContext",
    "CallError",
    "CallOutput",
    "CallRunner",
    "CallTransportError",
    "CmdResult",
    "CmdRunner",
    "CpiRunError",
    "DirectStrategy",
    "InvocationStrategy",
    "JSONValue",
    "PluginCallError",
    "PluginDescriptor",
    "ProcessExecutionError",
    "ProcessSpec",
    "ShellWrappedStrategy",
    "SubprocessCmdRunner",
    "decode_output",
    "encode_request",
    "load_descriptor",
    "select_strategy",
]
