from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date

class BorrowRequest(BaseModel):
    isbn: str = Field(..., min_length=1)
    subscriber_number: str = Field(..., min_length=1)
    force: bool = False

class Loan(BaseModel):
    id: str
    book_isbn: str
    reader_subscriber_number: str
    borrow_date: date
    due_date: date
    returned: bool
    returned_on: Optional[date] = None
    overdue_days: int = 0

    class Config:
        from_attributes = True

class BorrowCheck(BaseModel):
    isbn: str
    subscriber_number: str
    monthly_loan_count: int
    monthly_limit: int
    limit_reached: bool
    overdue_loans: List[Loan] = []
