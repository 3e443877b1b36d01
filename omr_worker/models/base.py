"""Base model for the worker's JSON wire format.

The calling backend speaks camelCase (``scoreId``, ``fileData``,
``measureGroups``); Python code keeps snake_case attribute names. Requests
are accepted under either spelling, and FastAPI serializes responses by
alias, so every model in this package inherits from ``CamelModel``.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
