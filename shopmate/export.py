# shopmate/export.py
"""Shopify product-import CSV (one row per variant)."""
import csv
import io
from typing import Any, Dict, Iterable, List

from shopmate.models import Product

SHOPIFY_COLUMNS = [
    "Handle", "Title", "Body (HTML)", "Vendor", "Product Category", "Type", "Tags", "Published",
    "Option1 Name", "Option1 Value", "Option2 Name", "Option2 Value", "Option3 Name", "Option3 Value",
    "Variant SKU", "Variant Grams", "Variant Inventory Tracker", "Variant Inventory Qty",
    "Variant Inventory Policy", "Variant Fulfillment Service", "Variant Price", "Variant Compare At Price",
    "Variant Requires Shipping", "Variant Taxable", "Variant Barcode", "Image Src", "Image Position",
    "Image Alt Text", "Gift Card", "SEO Title", "SEO Description",
    "Google Shopping / Google Product Category", "Google Shopping / Gender", "Google Shopping / Age Group",
    "Google Shopping / MPN", "Google Shopping / AdWords Grouping", "Google Shopping / AdWords Labels",
    "Google Shopping / Condition", "Google Shopping / Custom Product", "Google Shopping / Custom Label 0",
    "Google Shopping / Custom Label 1", "Google Shopping / Custom Label 2", "Google Shopping / Custom Label 3",
    "Google Shopping / Custom Label 4", "Variant Image", "Variant Weight Unit", "Variant Tax Code",
    "Cost per item", "Price / International", "Compare At Price / International", "Status",
]


def _option_names(product: Product) -> List[str]:
    names = [o.get("name") or "" for o in (getattr(product, "options", None) or []) if isinstance(o, dict)]
    return (names + ["", "", ""])[:3]


def product_rows(product: Product) -> List[Dict[str, Any]]:
    rows = []
    image = product.images[0] if product.images else None
    option_names = _option_names(product)
    # public feeds omit status; listed products are live
    status = product.status or "active"
    for index, variant in enumerate(product.variants):
        first = index == 0
        row = dict.fromkeys(SHOPIFY_COLUMNS, "")
        row.update({
            "Handle": product.handle or "",
            "Title": (product.title or "") if first else "",
            "Body (HTML)": (product.body_html or "") if first else "",
            "Vendor": (product.vendor or "") if first else "",
            "Type": (product.product_type or "") if first else "",
            "Tags": ", ".join(product.tags) if first else "",
            "Published": "TRUE" if status == "active" else "FALSE",
            "Option1 Name": (option_names[0] or "Title") if first else "",
            "Option1 Value": variant.option1 or variant.title or "",
            "Option2 Name": option_names[1] if first else "",
            "Option2 Value": variant.option2 or "",
            "Option3 Name": option_names[2] if first else "",
            "Option3 Value": variant.option3 or "",
            "Variant SKU": variant.sku or "",
            "Variant Inventory Policy": "deny",
            "Variant Fulfillment Service": "manual",
            "Variant Price": variant.price or "",
            "Variant Compare At Price": variant.compare_at_price or "",
            "Variant Requires Shipping": "TRUE",
            "Variant Taxable": "TRUE",
            "Image Src": (image.src or "") if first and image else "",
            "Image Position": "1" if first and image else "",
            "Image Alt Text": (image.alt or "") if first and image else "",
            "Gift Card": "FALSE",
            "Variant Weight Unit": "kg",
            "Status": status,
        })
        rows.append(row)
    return rows


def products_to_csv(products: Iterable[Product]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=SHOPIFY_COLUMNS, lineterminator="\r\n")
    writer.writeheader()
    for product in products:
        writer.writerows(product_rows(product))
    return buf.getvalue()
