import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import config
from cart import CartService
from catalog import derive_categories, query_products
from checkout import CheckoutService
from database import db
from errors import AuthenticationError, StoreError
from repository import MongoStoreRepository, StoreRepository
from schemas import CartSummary, Order, Product, QueryParams, ShippingAddress, User

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        MongoStoreRepository(db).ensure_indexes()
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("[STORE_UNAVAILABLE] %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# Dependencies

def get_repository() -> StoreRepository:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return MongoStoreRepository(db)


def get_current_user(
    authorization: Optional[str] = Header(None),
    repository: StoreRepository = Depends(get_repository),
) -> User:
    """Resolve `Authorization: Bearer <token>` to a user, or answer 401."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authentication required")
    user = repository.get_current_user(token.strip())
    if user is None:
        raise AuthenticationError("Invalid session")
    return user


@app.get("/")
def read_root():
    return {"message": "Storefront backend is running"}


# Catalog

@app.get("/api/products", response_model=List[Product])
def list_products(
    term: str = "",
    category: str = "",
    price_min: float = 0,
    price_max: float = config.DEFAULT_PRICE_MAX,
    sort_by: str = "name",
    repository: StoreRepository = Depends(get_repository),
):
    params = QueryParams(term=term, category=category, price_min=price_min,
                         price_max=price_max, sort_by=sort_by)
    return query_products(repository.list_products(), params)


@app.get("/api/categories", response_model=List[str])
def list_categories(repository: StoreRepository = Depends(get_repository)):
    return derive_categories(repository.list_products())


class SeedRequest(BaseModel):
    force: bool = False


def sample_products() -> List[Product]:
    now = datetime.now(timezone.utc)
    rows = [
        ("Classic Tee", "Soft cotton unisex t-shirt", "Apparel", 19.99, 120,
         "https://images.unsplash.com/photo-1520975916090-3105956dac38?q=80&w=800&auto=format&fit=crop"),
        ("Minimal Backpack", "Lightweight everyday backpack", "Bags", 49.0, 35,
         "https://images.unsplash.com/photo-1519681393784-d120267933ba?q=80&w=800&auto=format&fit=crop"),
        ("Wireless Earbuds", "Noise-isolating Bluetooth earbuds", "Electronics", 59.99, 0,
         "https://images.unsplash.com/photo-1518448059646-51f7ebf92613?q=80&w=800&auto=format&fit=crop"),
        ("Ceramic Mug", "12oz matte finish mug", "Home", 12.5, 80,
         "https://images.unsplash.com/photo-1525385133512-2f3bdd039054?q=80&w=800&auto=format&fit=crop"),
    ]
    return [
        Product(name=name, description=desc, category=cat, price=price,
                stock_quantity=stock, image_url=image, created_at=now - timedelta(days=i))
        for i, (name, desc, cat, price, stock, image) in enumerate(rows)
    ]


@app.post("/api/products/seed")
def seed_products(payload: SeedRequest, repository: StoreRepository = Depends(get_repository)):
    count = repository.count_products()
    if count > 0 and not payload.force:
        return {"inserted": 0, "message": "Products already exist"}

    if payload.force:
        repository.delete_all_products()

    inserted = repository.insert_products(sample_products())
    logger.info("[SEED] inserted=%s force=%s", inserted, payload.force)
    return {"inserted": inserted}


# Cart

class CartAddRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartUpdateRequest(BaseModel):
    quantity: int = Field(..., ge=1)


@app.get("/api/cart", response_model=CartSummary)
def get_cart(user: User = Depends(get_current_user),
             repository: StoreRepository = Depends(get_repository)):
    return CartService(repository).summary(user)


@app.post("/api/cart/add", response_model=CartSummary)
def add_to_cart(item: CartAddRequest,
                user: User = Depends(get_current_user),
                repository: StoreRepository = Depends(get_repository)):
    return CartService(repository).add(user, item.product_id, item.quantity)


@app.patch("/api/cart/{product_id}", response_model=CartSummary)
def update_cart_item(product_id: str, payload: CartUpdateRequest,
                     user: User = Depends(get_current_user),
                     repository: StoreRepository = Depends(get_repository)):
    return CartService(repository).update_quantity(user, product_id, payload.quantity)


@app.delete("/api/cart/{product_id}", response_model=CartSummary)
def remove_cart_item(product_id: str,
                     user: User = Depends(get_current_user),
                     repository: StoreRepository = Depends(get_repository)):
    return CartService(repository).remove(user, product_id)


@app.delete("/api/cart")
def clear_cart(user: User = Depends(get_current_user),
               repository: StoreRepository = Depends(get_repository)):
    return {"deleted": CartService(repository).clear(user)}


# Checkout

class CheckoutRequest(BaseModel):
    shipping_address: ShippingAddress


@app.post("/api/checkout", response_model=Order)
def checkout(payload: CheckoutRequest,
             user: User = Depends(get_current_user),
             repository: StoreRepository = Depends(get_repository)):
    return CheckoutService(repository).place_order(user, payload.shipping_address)


@app.get("/api/orders", response_model=List[Order])
def list_orders(user: User = Depends(get_current_user),
                repository: StoreRepository = Depends(get_repository)):
    return CheckoutService(repository).list_orders(user)


@app.get("/test")
def test_database():
    """Report whether the database is configured and reachable"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": config.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is None:
        return response

    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("[DB_CHECK] %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
