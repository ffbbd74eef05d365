"""Lazy loading for the Google GenAI SDK.

Defers importing google.genai until a provider or converter actually needs
it, so the session, parser and loop import (and test) without the SDK cost.
"""

import importlib
from types import ModuleType
from typing import Dict

_modules: Dict[str, ModuleType] = {}


def _load(name: str) -> ModuleType:
    module = _modules.get(name)
    if module is None:
        try:
            module = importlib.import_module(name)
        except ImportError as e:
            raise ImportError(
                "google-genai package not installed. "
                "Install with: pip install google-genai"
            ) from e
        _modules[name] = module
    return module


def get_genai() -> ModuleType:
    """Return the ``google.genai`` module (client construction)."""
    return _load("google.genai")


def get_types() -> ModuleType:
    """Return the ``google.genai.types`` module (request/response types)."""
    return _load("google.genai.types")
