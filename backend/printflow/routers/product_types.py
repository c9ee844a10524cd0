"""Product type catalog endpoint."""
from fastapi import APIRouter, Depends

from ..auth import CurrentUser, get_current_user
from ..services.product_types import catalog_as_dict

router = APIRouter(prefix="/product-types", tags=["product-types"])


@router.get("")
def list_product_types(current_user: CurrentUser = Depends(get_current_user)):
    return catalog_as_dict()
