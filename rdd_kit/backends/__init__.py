"""
Inference backends for rdd_kit.

Backends are kept in a separate module so core functionality (letterbox and
coordinate mapping) stays lightweight and can be used without an inference runtime.
"""

from __future__ import annotations

__all__ = []
