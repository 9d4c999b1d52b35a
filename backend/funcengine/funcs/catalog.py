# backend/funcengine/funcs/catalog.py
"""
Func Catalog - builtin function definitions loaded from YAML
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from funcengine.funcs.registry import FuncRegistry
from funcengine.ir.func import Func, FuncBackendKind

logger = logging.getLogger(__name__)

BUILTINS_PATH = os.path.join(os.path.dirname(__file__), "builtins.yaml")


def func_from_dict(data: Dict[str, Any], is_builtin: bool = False) -> Func:
    return Func(
        id=str(data["id"]),
        name=data.get("name", str(data["id"])),
        kind=FuncBackendKind(data["kind"]),
        handler=data.get("handler", ""),
        description=data.get("description"),
        code=data.get("code"),
        is_builtin=data.get("is_builtin", is_builtin),
        revision=int(data.get("revision", 1)),
    )


def load_catalog(path: Optional[str] = None, is_builtin: bool = True) -> List[Func]:
    """Parse a catalog file into Func definitions."""
    path = path or BUILTINS_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    funcs = [func_from_dict(entry, is_builtin=is_builtin) for entry in data.get("funcs", [])]
    logger.info("[FuncCatalog] loaded %d funcs from %s", len(funcs), os.path.basename(path))
    return funcs


def register_builtin_funcs(registry: FuncRegistry, path: Optional[str] = None) -> int:
    """Register every builtin func. Returns how many were added."""
    count = 0
    for func in load_catalog(path):
        if func.id not in registry:
            registry.register(func)
            count += 1
    return count
