from __future__ import annotations
from pydantic import BaseModel

# LIST SCHEMAS

class Pagination(BaseModel):
    """Paging block shared by every list response"""
    page: int
    per_page: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool
