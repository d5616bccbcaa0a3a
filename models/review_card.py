from pydantic import BaseModel, Field, field_validator
from datetime import datetime

class ReviewCard(BaseModel):
    id: str
    source_ref: str
    due_at: datetime
    repetition_count: int = Field(default=0, ge=0)
    ease_factor: float = Field(default=2.5, ge=1.3)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ScheduleResult(BaseModel):
    """Fields produced by one scheduling step; callers persist them."""
    due_at: datetime
    repetition_count: int
    ease_factor: float
    interval_days: int

class ReviewCardCreate(BaseModel):
    source_ref: str = Field(min_length=1)

    @field_validator('source_ref', mode='before')
    @classmethod
    def strip_source_ref(cls, v):
        return v.strip() if isinstance(v, str) else v

class ReviewSubmit(BaseModel):
    quality: int

    @field_validator('quality', mode='before')
    @classmethod
    def validate_quality(cls, v):
        if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= 5:
            raise ValueError("quality must be an integer between 0 and 5")
        return v
