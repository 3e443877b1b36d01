"""
OMR Worker Authentication Module

Shared-secret bearer authentication for the processing endpoint.
"""
from __future__ import annotations

from omr_worker.auth.dependencies import require_api_key

__all__ = [
    "require_api_key",
]
