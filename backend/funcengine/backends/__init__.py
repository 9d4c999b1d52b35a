"""
Backend Dispatcher and the per-kind backends it routes to.
"""

from funcengine.backends.base import FuncBackend, FuncExecutionContext
from funcengine.backends.dispatcher import BackendDispatcher, default_backends
from funcengine.backends.runtime.base import ScriptRuntime
from funcengine.backends.runtime.http import HttpScriptRuntime
from funcengine.backends.runtime.local import LocalScriptRuntime

__all__ = [
    "BackendDispatcher",
    "FuncBackend",
    "FuncExecutionContext",
    "HttpScriptRuntime",
    "LocalScriptRuntime",
    "ScriptRuntime",
    "default_backends",
]
