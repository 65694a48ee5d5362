# shopmate/routers/export.py
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from shopmate.export import products_to_csv
from shopmate.models import Product

router = APIRouter()


class ExportRequest(BaseModel):
    products: Optional[List[Product]] = None


@router.post("/api/export")
async def export_csv(req: ExportRequest):
    if req.products is None:
        raise HTTPException(status_code=400, detail="No products provided")
    return Response(
        content=products_to_csv(req.products),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="shopify_import.csv"'},
    )
