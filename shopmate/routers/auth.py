# shopmate/routers/auth.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from shopmate.auth import clear_session_cookie, get_current_user, set_session_cookie
from shopmate.dependencies import get_storage
from shopmate.storage import Storage
from shopmate.utils import is_valid_email

router = APIRouter(prefix="/api/auth")


class EmailRequest(BaseModel):
    email: Optional[str] = None


@router.post("/register")
async def register(req: EmailRequest, response: Response, storage: Storage = Depends(get_storage)):
    if not is_valid_email(req.email):
        raise HTTPException(status_code=400, detail="Valid email is required")
    email = req.email.strip()
    storage.add_user(email)
    set_session_cookie(response, email)
    return {"ok": True, "user": {"email": email}}


@router.post("/login")
async def login(req: EmailRequest, response: Response, storage: Storage = Depends(get_storage)):
    email = (req.email or "").strip()
    if not email or email not in storage.list_users():
        raise HTTPException(status_code=404, detail="User not found")
    set_session_cookie(response, email)
    return {"ok": True, "user": {"email": email}}


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"ok": True}


@router.get("/me")
async def me(email: Optional[str] = Depends(get_current_user)):
    return {"user": {"email": email} if email else None}
