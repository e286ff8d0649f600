"""
Pydantic models for the Float boundary.

Shapes accepted from outside the process: actions sent by callers, and rule
descriptors produced by the completion fallback. No imports from services.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from float_engine.kernel.types import RESERVED_TYPES


class ActionSpec(BaseModel):
    """One {type, payload} entry."""

    model_config = {"extra": "ignore"}

    type: str = Field(min_length=1, max_length=200)
    payload: Any = None

    @field_validator("type")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("type must not be blank")
        return v


class ActionIn(ActionSpec):
    """What a caller sends to float_dispatch."""

    model_config = {"extra": "forbid"}


class RuleSpec(BaseModel):
    """
    A rule descriptor as emitted by a language model.

    Needs a name, at least one action, and a trigger ('condition' or
    'pattern'). Actions may not use internal action types.
    """

    model_config = {"extra": "ignore"}

    name: str = Field(min_length=1, max_length=200)
    condition: str | None = Field(default=None, max_length=2000)
    pattern: str | None = Field(default=None, max_length=500)
    actions: list[ActionSpec] = Field(min_length=1, max_length=32)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("actions")
    @classmethod
    def _no_reserved(cls, v: list[ActionSpec]) -> list[ActionSpec]:
        for a in v:
            if a.type in RESERVED_TYPES:
                raise ValueError(f"action type is reserved: {a.type}")
        return v

    @model_validator(mode="after")
    def _has_trigger(self) -> RuleSpec:
        if not (self.condition and self.condition.strip()) and not (self.pattern and self.pattern.strip()):
            raise ValueError("rule needs a 'condition' or a 'pattern'")
        return self

    def to_descriptor(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "actions": [a.model_dump() for a in self.actions],
        }
        if self.condition:
            d["condition"] = self.condition
        if self.pattern:
            d["pattern"] = self.pattern
        if self.description:
            d["description"] = self.description
        return d
