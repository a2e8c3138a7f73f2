from typing import Generic, List, TypeVar, Optional
from pydantic import BaseModel

T = TypeVar("T")

class ResponseBase(BaseModel, Generic[T]):
    data: Optional[T] = None
    message: Optional[str] = None
    success: bool = True

class StandardResponse(ResponseBase[T]):
    pass

class PaginatedResponse(ResponseBase[List[T]], Generic[T]):
    total: int = 0
    page: int = 1
    limit: int = 20
    total_pages: int = 0
