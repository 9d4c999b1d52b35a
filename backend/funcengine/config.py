import os
from dotenv import load_dotenv

from funcengine.ir.func import FuncBackendKind

# Load .env from project root
load_dotenv()

DATABASE_URL = os.getenv("FUNCENGINE_DATABASE_URL", "sqlite://")
SCRIPT_RUNTIME_URL = os.getenv("FUNCENGINE_SCRIPT_RUNTIME_URL", "http://localhost:5157")
SCRIPT_RUNTIME_HTTP_TIMEOUT = float(os.getenv("FUNCENGINE_SCRIPT_RUNTIME_HTTP_TIMEOUT", "310"))
LOG_LEVEL = os.getenv("FUNCENGINE_LOG_LEVEL", "INFO")

# Seconds per script kind; FUNCENGINE_TIMEOUT_<KIND> overrides, e.g.
# FUNCENGINE_TIMEOUT_JSRESOURCESYNC=600
DEFAULT_TIMEOUTS = {
    FuncBackendKind.JS_ATTRIBUTE: 30.0,
    FuncBackendKind.JS_QUALIFICATION: 30.0,
    FuncBackendKind.JS_CODE_GENERATION: 30.0,
    FuncBackendKind.JS_RESOURCE_SYNC: 300.0,
}


def get_timeout(kind: FuncBackendKind):
    """Timeout in seconds for a script kind, or None for kinds that never suspend."""
    default = DEFAULT_TIMEOUTS.get(kind)
    if default is None:
        return None
    raw = os.getenv(f"FUNCENGINE_TIMEOUT_{kind.value.upper()}")
    return float(raw) if raw else default


def load_timeouts():
    return {kind: get_timeout(kind) for kind in DEFAULT_TIMEOUTS}
