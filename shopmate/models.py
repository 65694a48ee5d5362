from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def split_tags(value: Any) -> List[str]:
    """Normalize upstream tags (comma-delimited string or list) into a list."""
    if value is None:
        return []
    if isinstance(value, str):
        pieces = value.split(",")
    else:
        pieces = [str(v) for v in value if v is not None]
    return [t.strip() for t in pieces if t.strip()]


class Image(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    product_id: Optional[int] = None
    src: Optional[str] = None
    alt: Optional[str] = None


class Variant(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    product_id: Optional[int] = None
    title: Optional[str] = None
    price: Optional[str] = None
    compare_at_price: Optional[str] = None
    sku: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("price", "compare_at_price", mode="before")
    @classmethod
    def _price_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class Product(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    title: Optional[str] = None
    handle: Optional[str] = None
    body_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    status: Optional[str] = None
    tags: List[str] = []
    images: List[Image] = []
    variants: List[Variant] = []
    updated_at: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, v):
        return split_tags(v)


class Collection(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    handle: Optional[str] = None
    title: Optional[str] = None
    products_count: Optional[int] = None


class VendorFacet(BaseModel):
    name: str
    count: int


class Catalog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    products: List[Product] = []
    collections: List[Collection] = []
    vendors: List[VendorFacet] = []
    product_types: List[str] = Field(default_factory=list, alias="productTypes")

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready payload; upstream fields the storefront did not send stay absent."""
        return {
            "products": [dump_product(p) for p in self.products],
            "collections": [dump_collection(c) for c in self.collections],
            "vendors": [v.model_dump() for v in self.vendors],
            "productTypes": list(self.product_types),
        }


def dump_product(product: Product) -> Dict[str, Any]:
    return product.model_dump(mode="json", exclude_unset=True)


def dump_collection(collection: Collection) -> Dict[str, Any]:
    return collection.model_dump(mode="json", exclude_unset=True)


class IndexEntry(BaseModel):
    id: Union[int, str, None] = None
    updated_at: Optional[str] = None
    hash: Optional[str] = None


class Presets(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vendors: List[str] = []
    product_types: List[str] = Field(default_factory=list, alias="productTypes")
    tags: List[str] = []


class CatalogSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    products: List[Product] = []
    product_index: List[IndexEntry] = Field(default_factory=list, alias="productIndex")
    stores: List[Any] = []
    collections: List[Collection] = []
    updated_at: int = Field(0, alias="updatedAt")
    user: str = "anon"
    schema_version: int = Field(alias="schemaVersion")
    data_presets: Optional[Presets] = Field(None, alias="dataPresets")


# server-side registry records

class HistoryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    shop_url: str = Field(alias="shopUrl")
    date: str
    product_count: int = Field(alias="productCount")
    collection_count: int = Field(alias="collectionCount")


class UserStore(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    shop_url: str = Field(alias="shopUrl")
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    product_count: Optional[int] = Field(None, alias="productCount")
    collection_count: Optional[int] = Field(None, alias="collectionCount")


class UserList(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: str
    created_at: str = Field(alias="createdAt")
    items: List[Dict[str, Any]] = []
