# backend/funcengine/funcs/__init__.py
"""
Function definitions: registry and builtin catalog.
"""

from funcengine.funcs.registry import FuncRegistry, get_func_registry
from funcengine.funcs.catalog import func_from_dict, load_catalog, register_builtin_funcs

__all__ = [
    "FuncRegistry",
    "get_func_registry",
    "func_from_dict",
    "load_catalog",
    "register_builtin_funcs",
]
