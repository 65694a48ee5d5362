import json

import httpx
import pytest
from fastapi.testclient import TestClient

from shopmate.dependencies import get_http_client, get_storage
from shopmate.main import app
from shopmate.storage import Storage

ORIGIN = "https://shop.example"


def make_products(n, start=1, vendor="Acme", **extra):
    return [
        {
            "id": i,
            "title": f"Product {i}",
            "handle": f"product-{i}",
            "vendor": vendor,
            "product_type": "Shirts",
            "tags": ["cotton", "summer"],
            "updated_at": "2024-01-01T00:00:00Z",
            "variants": [{"id": i * 10, "product_id": i, "title": "Default Title", "price": "10.00"}],
            **extra,
        }
        for i in range(start, start + n)
    ]


class FakeStorefront:
    """Serves products.json pages and collections.json from memory."""

    def __init__(self, product_pages=None, collections=None, fail_product_page=None, collection_products=None):
        self.product_pages = product_pages or []
        self.collections = collections or []
        self.fail_product_page = fail_product_page
        self.collection_products = collection_products or {}
        self.requests = []
        self._client = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url)
        path = request.url.path
        page = int(request.url.params.get("page", "1"))
        if path == "/products.json":
            if page == self.fail_product_page:
                return httpx.Response(500)
            items = self.product_pages[page - 1] if page <= len(self.product_pages) else []
            return httpx.Response(200, json={"products": items})
        if path == "/collections.json":
            return httpx.Response(200, json={"collections": self.collections})
        if path.startswith("/collections/") and path.endswith("/products.json"):
            handle = path.split("/")[2]
            pages = self.collection_products.get(handle, [])
            items = pages[page - 1] if page <= len(pages) else []
            return httpx.Response(200, json={"products": items})
        return httpx.Response(404)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return self._client

    def count(self, path):
        return sum(1 for url in self.requests if url.path == path)


class SpyStorage(Storage):
    def __init__(self, data_dir):
        super().__init__(data_dir)
        self.saved = []

    def save_cached_scrape(self, email, shop_url, data):
        self.saved.append((email, shop_url))
        super().save_cached_scrape(email, shop_url, data)


def read_events(text):
    return [json.loads(part[len("data: "):]) for part in text.split("\n\n") if part.startswith("data: ")]


@pytest.fixture
def storage(tmp_path):
    return SpyStorage(tmp_path / "data")


@pytest.fixture
def storefront():
    return FakeStorefront(
        product_pages=[make_products(250), make_products(250, start=251)],
        collections=[{"id": 1, "handle": "shirts", "title": "Shirts", "products_count": 3}],
    )


@pytest.fixture
def api(storage, storefront):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_http_client] = lambda: storefront.client
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def login(api):
    def _login(email="ada@example.com"):
        r = api.post("/api/auth/register", json={"email": email})
        assert r.status_code == 200
        return email
    return _login
