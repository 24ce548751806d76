from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserCreate(BaseModel):
    email: str
    password: str


class PromoteRequest(BaseModel):
    email: str


class TextbookCreate(BaseModel):
    title: str
    author: str
    isbn: Optional[str] = None
    description: Optional[str] = None
    pdf_storage_id: str
    pdf_password: str


class TextbookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    isbn: Optional[str] = None
    description: Optional[str] = None
    is_checked_out: bool
    checked_out_by: Optional[int] = None
    checked_out_at: Optional[int] = None
    due_date: Optional[int] = None


class TextbookListItem(TextbookOut):
    checked_out_by_user: Optional[str] = None
    is_checked_out_by_current_user: bool


class CheckoutOut(BaseModel):
    success: bool
    due_date: int


class ReturnOut(BaseModel):
    success: bool


class PdfAccessOut(BaseModel):
    pdf_url: Optional[str] = None
    password: str
    due_date: int


class UploadOut(BaseModel):
    storage_id: str


class CheckoutRecordOut(BaseModel):
    id: int
    textbook_id: int
    textbook_title: str
    user_id: int
    checked_out_at: int
    returned_at: Optional[int] = None
    auto_returned: bool
