"""Extraction schemas used by the built-in patterns and workflow templates."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class KeywordAnalysis(BaseModel):
    keywords: list[str] = Field(description="Key terms from the text")
    category: str = Field(description="Single best-fitting category for the text")


class ModerationVerdict(BaseModel):
    is_safe: bool = Field(alias="isSafe")
    categories: list[str] = Field(default_factory=list)
    severity: Literal["low", "medium", "high"] = "low"

    model_config = {"populate_by_name": True}
