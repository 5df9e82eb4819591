from pydantic import BaseModel, EmailStr, Field
from typing import Optional

class ReaderIn(BaseModel):
    subscriber_number: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    max_loan_days: int = Field(..., gt=0)

    class Config:
        str_strip_whitespace = True

class ReaderUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    max_loan_days: Optional[int] = Field(None, gt=0)

    class Config:
        str_strip_whitespace = True

class Reader(BaseModel):
    subscriber_number: str
    first_name: str
    last_name: str
    email: str
    max_loan_days: int

    class Config:
        from_attributes = True
