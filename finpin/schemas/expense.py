from typing import List, Optional

from pydantic import BaseModel, Field


class ImageMetadata(BaseModel):
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None


class ExpenseContext(BaseModel):
    location: Optional[str] = None
    timestamp: Optional[str] = None
    image_metadata: Optional[ImageMetadata] = None
    timezone_offset: Optional[int] = None


class ExpenseParseIn(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    context: Optional[ExpenseContext] = None


class ExpenseExtensions(BaseModel):
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    parsed_at: Optional[str] = None
    source: Optional[str] = None
    original_text: Optional[str] = None


class ExpenseParseResult(BaseModel):
    amount: str
    currency: str
    merchant: Optional[str] = None
    payment_method: Optional[str] = None
    payment_card: Optional[str] = None
    location: Optional[str] = None
    timestamp: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    extensions: Optional[ExpenseExtensions] = None


class ExpenseParseOut(BaseModel):
    success: bool = True
    data: ExpenseParseResult
