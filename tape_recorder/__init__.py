"""tape-recorder: record-mode HTTP proxy.

Forwards every request to a configured upstream API, appends the exchange to
a JSON tape, and relays the upstream response back to the caller. Tapes are
meant for deterministic replay in tests.
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "__version__",
    "ConfigError",
    "RecorderConfig",
    "load_config",
    "ForwardingError",
    "ForwardResult",
    "UpstreamResponse",
    "TapeStore",
    "create_app",
]

from tape_recorder.config import ConfigError, RecorderConfig, load_config
from tape_recorder.proxy import ForwardingError, ForwardResult, UpstreamResponse, create_app
from tape_recorder.tape import TapeStore
