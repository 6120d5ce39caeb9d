"""
Call script registry.
"""
from .templates import (
    CallScript,
    SCRIPTS,
    get_call_script,
    render_call_script,
)

__all__ = [
    "CallScript",
    "SCRIPTS",
    "get_call_script",
    "render_call_script",
]
