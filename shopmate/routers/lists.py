# shopmate/routers/lists.py
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from shopmate.auth import get_current_user, require_user
from shopmate.dependencies import get_storage
from shopmate.models import UserList
from shopmate.storage import Storage

router = APIRouter(prefix="/api/lists")


class ListNameRequest(BaseModel):
    name: Optional[str] = None


class AddItemsRequest(BaseModel):
    products: Optional[List[Dict[str, Any]]] = None


class RemoveItemsRequest(BaseModel):
    keys: Optional[List[str]] = None


class UpdateItemsRequest(BaseModel):
    updates: Optional[List[Dict[str, Any]]] = None


def _dump(lst: UserList) -> Dict[str, Any]:
    return lst.model_dump(by_alias=True)


def _found(lst: Optional[UserList]) -> Dict[str, Any]:
    if lst is None:
        raise HTTPException(status_code=404, detail="List not found")
    return {"ok": True, "list": _dump(lst)}


@router.get("")
async def get_lists(email: Optional[str] = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    if not email:
        return {"lists": []}
    return {"lists": [_dump(lst) for lst in storage.get_lists(email)]}


@router.post("")
async def create_list(req: ListNameRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    name = (req.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name required")
    return {"ok": True, "list": _dump(storage.create_list(email, name))}


@router.get("/{list_id}")
async def get_list(list_id: str, email: Optional[str] = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    if not email:
        return {"list": None}
    lst = storage.get_list(email, list_id)
    return {"list": _dump(lst) if lst else None}


@router.put("/{list_id}")
async def rename_list(
    list_id: str, req: ListNameRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)
):
    name = (req.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name required")
    return _found(storage.rename_list(email, list_id, name))


@router.delete("/{list_id}")
async def delete_list(list_id: str, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    if not storage.delete_list(email, list_id):
        raise HTTPException(status_code=404, detail="List not found")
    return {"ok": True}


@router.post("/{list_id}/items")
async def add_items(
    list_id: str, req: AddItemsRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)
):
    if req.products is None:
        raise HTTPException(status_code=400, detail="products array required")
    return _found(storage.add_items_to_list(email, list_id, req.products))


@router.delete("/{list_id}/items")
async def remove_items(
    list_id: str, req: RemoveItemsRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)
):
    if req.keys is None:
        raise HTTPException(status_code=400, detail="keys array required")
    return _found(storage.remove_list_items(email, list_id, req.keys))


@router.patch("/{list_id}/items")
async def update_items(
    list_id: str, req: UpdateItemsRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)
):
    if req.updates is None:
        raise HTTPException(status_code=400, detail="updates array required")
    return _found(storage.update_list_items(email, list_id, req.updates))
