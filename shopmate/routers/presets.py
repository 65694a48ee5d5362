# shopmate/routers/presets.py
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from shopmate.auth import get_current_user, require_user
from shopmate.dependencies import get_storage
from shopmate.models import Presets
from shopmate.storage import PRESET_KINDS, Storage

router = APIRouter()


class PresetAdditions(BaseModel):
    vendors: Union[List[str], str, None] = None
    productTypes: Union[List[str], str, None] = None
    tags: Union[List[str], str, None] = None


class PresetRemoval(BaseModel):
    kind: Optional[str] = None
    value: Optional[str] = None


class PresetRename(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Optional[str] = None
    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None


def _dump(presets: Presets) -> Dict[str, Any]:
    return presets.model_dump(by_alias=True)


def _check_kind(kind: Optional[str]) -> str:
    if kind not in PRESET_KINDS:
        raise HTTPException(status_code=400, detail=f"kind must be one of {', '.join(PRESET_KINDS)}")
    return kind


@router.get("/api/presets")
async def get_presets(email: Optional[str] = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    if not email:
        return {"presets": _dump(Presets())}
    return {"presets": _dump(storage.get_presets(email))}


@router.post("/api/presets")
async def add_presets(req: PresetAdditions, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    updated = storage.add_to_presets(email, req.model_dump())
    return {"ok": True, "presets": _dump(updated)}


@router.delete("/api/presets")
async def remove_preset(req: PresetRemoval, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    if not req.kind or not req.value:
        raise HTTPException(status_code=400, detail="kind and value required")
    updated = storage.remove_from_presets(email, _check_kind(req.kind), req.value)
    if updated is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True, "presets": _dump(updated)}


@router.put("/api/presets")
async def rename_preset(req: PresetRename, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    if not req.kind or not req.from_:
        raise HTTPException(status_code=400, detail="kind and from required")
    updated = storage.rename_preset(email, _check_kind(req.kind), req.from_, (req.to or "").strip())
    if updated is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True, "presets": _dump(updated)}


@router.get("/api/user/prefs")
async def get_prefs(email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    return {"prefs": storage.get_prefs(email)}


@router.post("/api/user/prefs")
async def update_prefs(
    patch: Dict[str, Any] = Body(...), email: str = Depends(require_user), storage: Storage = Depends(get_storage)
):
    return {"ok": True, "prefs": storage.update_prefs(email, patch)}
