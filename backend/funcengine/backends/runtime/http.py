import asyncio
import json
from typing import Any, Optional

import requests

from funcengine.backends.runtime.base import ScriptRuntime
from funcengine.config import SCRIPT_RUNTIME_HTTP_TIMEOUT, SCRIPT_RUNTIME_URL
from funcengine.ir.errors import ComputationError
from funcengine.ir.func import Func


class HttpScriptRuntime(ScriptRuntime):
    """
    Sends script funcs to an external function-execution service.

    POST {base_url}/execute with the func's code, handler, kind, input and
    coordinate; the service answers {"result": ...} or {"error": "..."}.
    """

    def __init__(self, base_url: str = SCRIPT_RUNTIME_URL, timeout: float = SCRIPT_RUNTIME_HTTP_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, func: Func, value: Any, context) -> dict:
        return {
            "funcId": func.id,
            "kind": func.kind.value,
            "handler": func.handler,
            "code": func.code or "",
            "args": value,
            "componentId": getattr(context, "component_id", None),
            "visibility": context.visibility.to_dict() if context is not None else None,
        }

    def execute(self, func: Func, value: Any, context) -> Any:
        response = self.session.post(
            f"{self.base_url}/execute",
            json=self.build_payload(func, value, context),
            timeout=self.timeout,
        )
        response.raise_for_status()

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ComputationError(f"runtime returned non-JSON output for '{func.id}'", func_id=func.id) from e

        if data.get("error"):
            raise ComputationError(str(data["error"]), func_id=func.id)
        return data.get("result")

    async def run(self, func: Func, value: Any, context) -> Any:
        try:
            return await asyncio.to_thread(self.execute, func, value, context)
        except requests.RequestException as e:
            raise ComputationError(f"script runtime call failed for '{func.id}': {e}", func_id=func.id) from e
