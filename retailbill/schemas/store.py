from typing import List, Optional

from retailbill.schemas.common import CamelModel


class StoreResponse(CamelModel):
    id: int
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool


class StoreListData(CamelModel):
    stores: List[StoreResponse]
    user_store_id: Optional[int] = None
    message: str


class StoreListResponse(CamelModel):
    success: bool = True
    data: StoreListData
