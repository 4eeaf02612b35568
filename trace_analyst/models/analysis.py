"""
Analysis result contract returned to callers.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from trace_analyst.models.enums import FailureCategory


class AnalysisResult(BaseModel):
    """Normalized model output. Category is always a FailureCategory and confidence is within [0, 1]."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    root_cause: str = Field(..., alias="rootCause")
    category: FailureCategory = FailureCategory.OTHER
    suggested_fix: str = Field(..., alias="suggestedFix")
    fix_code: Optional[str] = Field(default=None, alias="fixCode")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    additional_notes: Optional[str] = Field(default=None, alias="additionalNotes")
