import logging
import math
import os
import re
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, File, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
import mailer
from database import (
    create_document,
    db,
    duplicate_guard,
    ensure_indexes,
    get_db,
    get_documents,
    serialize,
    to_object_id,
    utcnow,
)
from errors import ApiError, AuthFailure, NotFound, ReferentNotFound, ValidationFailure
from integrity import EntityKind, guarded_delete
from references import (
    create_priority,
    delete_priority,
    get_priority,
    get_priority_by_object,
    list_priorities,
    refresh_dashed_names,
    resolve_slug,
    update_priority,
)
from schemas import (
    AdminUser,
    Brand,
    BrandUpdate,
    Category,
    CategoryUpdate,
    Contact,
    ContactStatus,
    ContactStatusUpdate,
    Content,
    ContentUpdate,
    Enquiry,
    EnquiryStatus,
    EnquiryStatusUpdate,
    Page,
    Priority,
    PriorityUpdate,
    Product,
    ProductUpdate,
    ProfileUpdate,
    QuantityUpdate,
    RemoveImage,
    SubCategory,
    SubCategoryUpdate,
    User,
    UserUpdate,
)
from security import (
    create_access_token,
    get_current_user,
    get_optional_user,
    get_password_hash,
    public_user,
    require_admin,
    verify_password,
)
from sequence import create_enquiry
from slugs import dashed_name
from storage import AssetStorageError, LocalAssetStorage, discard_assets, get_storage

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        ensure_indexes(db)
    yield


app = FastAPI(title="Catalog Back-Office API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(config.MEDIA_URL, StaticFiles(directory=config.MEDIA_ROOT, check_dir=False), name="media")


@app.exception_handler(ApiError)
async def api_error_handler(request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


router = APIRouter(prefix="/api")


# Auth models
class LoginBody(BaseModel):
    email: str
    password: str


# Utils

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def get_or_404(database: Database, collection: str, object_id: str, label: str) -> Dict[str, Any]:
    doc = database[collection].find_one({"_id": to_object_id(object_id, label.lower())})
    if doc is None:
        raise NotFound(f"{label} not found")
    return doc


def changes_of(payload: BaseModel) -> Dict[str, Any]:
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        raise ValidationFailure("Nothing to update")
    return changes


def apply_update(database: Database, collection: str, doc: Dict[str, Any], changes: Dict[str, Any], unset: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    changes["updated_at"] = utcnow()
    update: Dict[str, Any] = {"$set": changes}
    if unset:
        update["$unset"] = unset
    return database[collection].find_one_and_update({"_id": doc["_id"]}, update, return_document=ReturnDocument.AFTER)


def paginated(key: str, items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {key: items, "total": total, "page": page, "pages": math.ceil(total / limit) if total else 0}


def by_id(database: Database, collection: str, ids) -> Dict[ObjectId, Dict[str, Any]]:
    ids = list({i for i in ids if i is not None})
    if not ids:
        return {}
    return {d["_id"]: d for d in database[collection].find({"_id": {"$in": ids}})}


# Health and DB test
@app.get("/")
def read_root():
    return {"message": "Catalog back-office API is running"}


@app.get("/test")
def test_database():
    """Report whether the catalog database is configured and reachable."""
    response = {"api": "running", "database": "not configured", "database_name": None, "collections": []}
    if db is None:
        return response
    response["database_name"] = db.name
    try:
        response["collections"] = sorted(db.list_collection_names())
        response["database"] = "connected"
    except PyMongoError:
        logger.exception("Database health check failed")
        response["database"] = "unreachable"
    return response


# -----------------------------
# Auth & profile
# -----------------------------
@router.post("/user/register", status_code=201)
def register(user: User, database: Database = Depends(get_db)):
    doc = {
        "name": user.name,
        "email": user.email.lower(),
        "password": get_password_hash(user.password),
        "phone": user.phone,
        "role": "User",
        "is_active": True,
    }
    with duplicate_guard("Email already exists"):
        doc = create_document(database, "user", doc)
    access_token = create_access_token({"sub": str(doc["_id"]), "role": doc["role"]})
    return {"message": "User created successfully", "token": access_token, "token_type": "bearer", "user": public_user(doc)}


@router.post("/login")
def login(body: LoginBody, database: Database = Depends(get_db)):
    user = database["user"].find_one({"email": body.email.strip().lower()})
    if not user or not verify_password(body.password, user["password"]):
        raise AuthFailure("Incorrect email or password")
    if not user.get("is_active", True):
        raise AuthFailure("Account is deactivated")
    access_token = create_access_token({"sub": str(user["_id"]), "role": user["role"]})
    return {"message": "Login successful", "token": access_token, "token_type": "bearer", "user": public_user(user)}


@router.get("/me")
def get_me(user=Depends(get_current_user)):
    return {"user": user}


@router.put("/me")
def update_me(payload: ProfileUpdate, background_tasks: BackgroundTasks, user=Depends(get_current_user), database: Database = Depends(get_db)):
    changes = changes_of(payload)
    notified = {k: ("(changed)" if k == "password" else v) for k, v in changes.items()}
    if "password" in changes:
        changes["password"] = get_password_hash(changes["password"])
    updated = apply_update(database, "user", {"_id": ObjectId(user["id"])}, changes)
    background_tasks.add_task(mailer.send_notification, mailer.profile_updated(updated["name"], updated["email"], notified))
    return {"message": "Profile updated successfully", "user": public_user(updated)}


# -----------------------------
# Admin user management
# -----------------------------
@router.get("/admin/users", dependencies=[Depends(require_admin)])
def list_users(role: Optional[str] = None, database: Database = Depends(get_db)):
    filter_dict = {"role": role} if role else {}
    users = get_documents(database, "user", filter_dict, sort=NEWEST_FIRST)
    return {"users": [public_user(u) for u in users]}


@router.post("/admin/users", status_code=201, dependencies=[Depends(require_admin)])
def create_admin(payload: AdminUser, background_tasks: BackgroundTasks, database: Database = Depends(get_db)):
    password = payload.password or secrets.token_urlsafe(9)
    doc = {
        "name": payload.name,
        "email": payload.email.lower(),
        "password": get_password_hash(password),
        "phone": payload.phone,
        "role": "Admin",
        "is_active": True,
    }
    with duplicate_guard("Email already exists"):
        doc = create_document(database, "user", doc)
    logger.info("Admin account created for %s", doc["email"])
    background_tasks.add_task(mailer.send_notification, mailer.new_admin_welcome(doc["name"], doc["email"], password))
    return {"message": "Admin created successfully", "user": public_user(doc)}


@router.get("/admin/users/{user_id}", dependencies=[Depends(require_admin)])
def get_user(user_id: str, database: Database = Depends(get_db)):
    return {"user": public_user(get_or_404(database, "user", user_id, "User"))}


@router.put("/admin/users/{user_id}")
def update_user(user_id: str, payload: UserUpdate, background_tasks: BackgroundTasks, admin=Depends(require_admin), database: Database = Depends(get_db)):
    existing = get_or_404(database, "user", user_id, "User")
    changes = changes_of(payload)
    if str(existing["_id"]) == admin["id"] and (changes.get("is_active") is False or changes.get("role") == "User"):
        raise ValidationFailure("You cannot deactivate or demote your own account")

    notified = {k: ("(changed)" if k == "password" else v) for k, v in changes.items()}
    if "email" in changes:
        changes["email"] = changes["email"].lower()
    if "password" in changes:
        changes["password"] = get_password_hash(changes["password"])
    with duplicate_guard("Email already exists"):
        updated = apply_update(database, "user", existing, changes)
    background_tasks.add_task(mailer.send_notification, mailer.profile_updated(updated["name"], updated["email"], notified))
    return {"message": "User updated successfully", "user": public_user(updated)}


@router.delete("/admin/users/{user_id}")
def delete_user(user_id: str, admin=Depends(require_admin), database: Database = Depends(get_db)):
    existing = get_or_404(database, "user", user_id, "User")
    if str(existing["_id"]) == admin["id"]:
        raise ValidationFailure("You cannot delete your own account")
    database["user"].delete_one({"_id": existing["_id"]})
    logger.info("User %s deleted by %s", existing["email"], admin["email"])
    return {"message": "User deleted successfully"}


# -----------------------------
# Brands
# -----------------------------
@router.get("/brand")
def list_brands(database: Database = Depends(get_db)):
    return {"brands": serialize(get_documents(database, "brand", sort=[("name", ASCENDING)]))}


@router.get("/brand/{brand_id}")
def get_brand(brand_id: str, database: Database = Depends(get_db)):
    return {"brand": serialize(get_or_404(database, "brand", brand_id, "Brand"))}


@router.post("/brand", status_code=201, dependencies=[Depends(require_admin)])
def create_brand(brand: Brand, database: Database = Depends(get_db)):
    doc = {**brand.model_dump(), "dashed_name": dashed_name(brand.name)}
    with duplicate_guard("Brand already exists"):
        doc = create_document(database, "brand", doc)
    return {"message": "Brand created successfully", "brand": serialize(doc)}


@router.put("/brand/{brand_id}", dependencies=[Depends(require_admin)])
def update_brand(brand_id: str, payload: BrandUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "brand", brand_id, "Brand")
    changes = changes_of(payload)
    if "name" in changes:
        changes["dashed_name"] = dashed_name(changes["name"])
    with duplicate_guard("Brand name already exists"):
        updated = apply_update(database, "brand", existing, changes)
    return {"message": "Brand updated successfully", "brand": serialize(updated)}


@router.delete("/brand/{brand_id}", dependencies=[Depends(require_admin)])
def delete_brand(brand_id: str, database: Database = Depends(get_db)):
    result = guarded_delete(database, EntityKind.BRAND, brand_id)
    return {"message": "Brand deleted successfully", **result}


# -----------------------------
# Categories
# -----------------------------
@router.get("/category")
def list_categories(database: Database = Depends(get_db)):
    return {"categories": serialize(get_documents(database, "category", sort=[("name", ASCENDING)]))}


@router.get("/category/with-subcategories")
def list_categories_with_subcategories(database: Database = Depends(get_db)):
    categories = get_documents(database, "category", sort=[("name", ASCENDING)])
    grouped: Dict[ObjectId, List[Dict[str, Any]]] = {}
    for sub in get_documents(database, "subcategory", sort=[("name", ASCENDING)]):
        grouped.setdefault(sub["category"], []).append(sub)
    items = []
    for cat in categories:
        item = serialize(cat)
        item["sub_categories"] = serialize(grouped.get(cat["_id"], []))
        items.append(item)
    return {"categories": items}


@router.get("/category/{category_id}")
def get_category(category_id: str, database: Database = Depends(get_db)):
    return {"category": serialize(get_or_404(database, "category", category_id, "Category"))}


@router.get("/category/{category_id}/subcategories")
def list_category_subcategories(category_id: str, database: Database = Depends(get_db)):
    category = get_or_404(database, "category", category_id, "Category")
    subs = get_documents(database, "subcategory", {"category": category["_id"]}, sort=[("name", ASCENDING)])
    return {"category": serialize(category), "sub_categories": serialize(subs)}


@router.post("/category", status_code=201, dependencies=[Depends(require_admin)])
def create_category(category: Category, database: Database = Depends(get_db)):
    doc = {**category.model_dump(), "dashed_name": dashed_name(category.name)}
    with duplicate_guard("Category already exists"):
        doc = create_document(database, "category", doc)
    return {"message": "Category created successfully", "category": serialize(doc)}


@router.put("/category/{category_id}", dependencies=[Depends(require_admin)])
def update_category(category_id: str, payload: CategoryUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "category", category_id, "Category")
    changes = changes_of(payload)
    if "name" in changes:
        changes["dashed_name"] = dashed_name(changes["name"])
    with duplicate_guard("Category name already exists"):
        updated = apply_update(database, "category", existing, changes)
    return {"message": "Category updated successfully", "category": serialize(updated)}


@router.delete("/category/{category_id}", dependencies=[Depends(require_admin)])
def delete_category(category_id: str, database: Database = Depends(get_db)):
    result = guarded_delete(database, EntityKind.CATEGORY, category_id)
    return {"message": "Category deleted successfully", **result}


# -----------------------------
# Subcategories
# -----------------------------
def populate_subcategories(database: Database, subs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    categories = by_id(database, "category", (s.get("category") for s in subs))
    out = []
    for sub in subs:
        item = serialize(sub)
        category = categories.get(sub.get("category"))
        item["category"] = serialize(category) if category else None
        out.append(item)
    return out


@router.get("/subcategory")
def list_subcategories(category: Optional[str] = None, database: Database = Depends(get_db)):
    filter_dict = {"category": to_object_id(category, "category")} if category else {}
    subs = get_documents(database, "subcategory", filter_dict, sort=[("name", ASCENDING)])
    return {"sub_categories": populate_subcategories(database, subs)}


@router.get("/subcategory/{subcategory_id}")
def get_subcategory(subcategory_id: str, database: Database = Depends(get_db)):
    sub = get_or_404(database, "subcategory", subcategory_id, "SubCategory")
    return {"sub_category": populate_subcategories(database, [sub])[0]}


@router.post("/subcategory", status_code=201, dependencies=[Depends(require_admin)])
def create_subcategory(payload: SubCategory, database: Database = Depends(get_db)):
    category = database["category"].find_one({"_id": to_object_id(payload.category, "category")})
    if category is None:
        raise ReferentNotFound("Category not found")
    doc = {**payload.model_dump(), "category": category["_id"], "dashed_name": dashed_name(payload.name)}
    doc = create_document(database, "subcategory", doc)
    return {"message": "SubCategory created successfully", "sub_category": populate_subcategories(database, [doc])[0]}


@router.put("/subcategory/{subcategory_id}", dependencies=[Depends(require_admin)])
def update_subcategory(subcategory_id: str, payload: SubCategoryUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "subcategory", subcategory_id, "SubCategory")
    changes = changes_of(payload)
    if "category" in changes:
        category = database["category"].find_one({"_id": to_object_id(changes["category"], "category")})
        if category is None:
            raise ReferentNotFound("Category not found")
        changes["category"] = category["_id"]
    if "name" in changes or not existing.get("dashed_name"):
        changes["dashed_name"] = dashed_name(changes.get("name", existing["name"]))
    updated = apply_update(database, "subcategory", existing, changes)
    return {"message": "SubCategory updated successfully", "sub_category": populate_subcategories(database, [updated])[0]}


@router.delete("/subcategory/{subcategory_id}", dependencies=[Depends(require_admin)])
def delete_subcategory(subcategory_id: str, database: Database = Depends(get_db)):
    result = guarded_delete(database, EntityKind.SUBCATEGORY, subcategory_id)
    return {"message": "SubCategory deleted successfully", **result}


# -----------------------------
# Products
# -----------------------------
PRODUCT_REFS = (("brand", "brand"), ("category", "category"), ("sub_category", "subcategory"))
NULLABLE_PRODUCT_FIELDS = {"sale_price", "cover_photo", "tab_description"}


def populate_products(database: Database, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    lookups = {field: by_id(database, collection, (p.get(field) for p in products)) for field, collection in PRODUCT_REFS}
    out = []
    for product in products:
        item = serialize(product)
        for field, _ in PRODUCT_REFS:
            ref = lookups[field].get(product.get(field))
            item[field] = serialize(ref) if ref else None
        out.append(item)
    return out


def check_product_refs(database: Database, brand: Any, category: Any, sub_category: Any) -> Dict[str, ObjectId]:
    """Make sure the brand, category and subcategory exist and the subcategory sits under the category."""
    found = {}
    for field, collection in PRODUCT_REFS:
        value = {"brand": brand, "category": category, "sub_category": sub_category}[field]
        doc = database[collection].find_one({"_id": to_object_id(value, field.replace("_", ""))})
        if doc is None:
            raise ReferentNotFound(f"{collection.capitalize()} not found")
        found[field] = doc
    if found["sub_category"]["category"] != found["category"]["_id"]:
        raise ValidationFailure("SubCategory does not belong to the selected category")
    return {field: doc["_id"] for field, doc in found.items()}


@router.get("/products")
def list_products(
    category: Optional[str] = None,
    brand: Optional[str] = None,
    sub_category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    featured: Optional[bool] = None,
    include_inactive: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user=Depends(get_optional_user),
    database: Database = Depends(get_db),
):
    filter_dict: Dict[str, Any] = {}
    if not (include_inactive and user and user["role"] == "Admin"):
        filter_dict["is_active"] = True
    if category:
        filter_dict["category"] = to_object_id(category, "category")
    if brand:
        filter_dict["brand"] = to_object_id(brand, "brand")
    if sub_category:
        filter_dict["sub_category"] = to_object_id(sub_category, "subcategory")
    if featured is not None:
        filter_dict["is_featured"] = featured
    if min_price is not None or max_price is not None:
        price_cond: Dict[str, Any] = {}
        if min_price is not None:
            price_cond["$gte"] = float(min_price)
        if max_price is not None:
            price_cond["$lte"] = float(max_price)
        filter_dict["$or"] = [{"sale_price": dict(price_cond)}, {"price": dict(price_cond)}]

    total = database["product"].count_documents(filter_dict)
    docs = get_documents(database, "product", filter_dict, sort=NEWEST_FIRST, skip=(page - 1) * limit, limit=limit)
    return paginated("products", populate_products(database, docs), total, page, limit)


@router.get("/products/search")
def search_products(q: str = Query(..., min_length=1), database: Database = Depends(get_db)):
    pattern = re.escape(q)
    docs = get_documents(database, "product", {
        "is_active": True,
        "$or": [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"sku": {"$regex": pattern, "$options": "i"}},
        ],
    }, limit=50)
    return {"products": populate_products(database, docs)}


@router.get("/products/{product_id}")
def get_product(product_id: str, database: Database = Depends(get_db)):
    product = get_or_404(database, "product", product_id, "Product")
    return {"product": populate_products(database, [product])[0]}


@router.post("/products", status_code=201, dependencies=[Depends(require_admin)])
def create_product(product: Product, database: Database = Depends(get_db)):
    doc = product.model_dump()
    doc.update(check_product_refs(database, product.brand, product.category, product.sub_category))
    doc["dashed_name"] = dashed_name(product.name)
    with duplicate_guard("SKU already exists"):
        doc = create_document(database, "product", doc)
    return {"message": "Product created successfully", "product": populate_products(database, [doc])[0]}


@router.put("/products/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, payload: ProductUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "product", product_id, "Product")
    sent = payload.model_dump(exclude_unset=True)
    unset = {k: "" for k, v in sent.items() if v is None and k in NULLABLE_PRODUCT_FIELDS}
    changes = {k: v for k, v in sent.items() if v is not None}
    if not changes and not unset:
        raise ValidationFailure("Nothing to update")

    if any(field in changes for field, _ in PRODUCT_REFS):
        changes.update(check_product_refs(
            database,
            changes.get("brand", existing["brand"]),
            changes.get("category", existing["category"]),
            changes.get("sub_category", existing["sub_category"]),
        ))
    if "name" in changes:
        changes["dashed_name"] = dashed_name(changes["name"])
    with duplicate_guard("SKU already exists"):
        updated = apply_update(database, "product", existing, changes, unset)
    return {"message": "Product updated successfully", "product": populate_products(database, [updated])[0]}


@router.patch("/products/{product_id}/quantity", dependencies=[Depends(require_admin)])
def update_quantity(product_id: str, payload: QuantityUpdate, database: Database = Depends(get_db)):
    product = get_or_404(database, "product", product_id, "Product")
    if payload.operation == "add":
        quantity = product["quantity"] + payload.quantity
    elif payload.operation == "subtract":
        quantity = max(0, product["quantity"] - payload.quantity)
    else:
        quantity = payload.quantity
    updated = apply_update(database, "product", product, {"quantity": quantity})
    return {
        "message": "Quantity updated successfully",
        "product": {"id": str(updated["_id"]), "name": updated["name"], "quantity": updated["quantity"]},
    }


def read_image(upload: UploadFile) -> bytes:
    if not (upload.content_type or "").startswith("image/"):
        raise ValidationFailure(f"{upload.filename}: only image files are allowed")
    data = upload.file.read()
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise ValidationFailure(f"{upload.filename}: file is larger than 5 MB")
    return data


@router.post("/products/{product_id}/images", dependencies=[Depends(require_admin)])
def upload_product_images(
    product_id: str,
    cover_photo: Optional[UploadFile] = File(None),
    images: Optional[List[UploadFile]] = File(None),
    database: Database = Depends(get_db),
    asset_storage: LocalAssetStorage = Depends(get_storage),
):
    product = get_or_404(database, "product", product_id, "Product")
    images = images or []
    if cover_photo is None and not images:
        raise ValidationFailure("No images provided")
    if len(images) > config.MAX_PRODUCT_IMAGES:
        raise ValidationFailure(f"At most {config.MAX_PRODUCT_IMAGES} images can be uploaded at once")

    cover_data = read_image(cover_photo) if cover_photo is not None else None
    image_data = [(f.filename, read_image(f)) for f in images]

    uploaded: List[str] = []
    try:
        cover_url = asset_storage.upload(cover_data, "products", cover_photo.filename) if cover_data is not None else None
        if cover_url:
            uploaded.append(cover_url)
        for filename, data in image_data:
            uploaded.append(asset_storage.upload(data, "products", filename))
    except AssetStorageError as e:
        discard_assets(asset_storage, uploaded)
        raise ValidationFailure(str(e))

    update: Dict[str, Any] = {"$set": {"updated_at": utcnow()}}
    if cover_url:
        update["$set"]["cover_photo"] = cover_url
    new_images = uploaded[1:] if cover_url else uploaded
    if new_images:
        update["$push"] = {"images": {"$each": new_images}}
    updated = database["product"].find_one_and_update({"_id": product["_id"]}, update, return_document=ReturnDocument.AFTER)

    if cover_url and product.get("cover_photo"):
        discard_assets(asset_storage, [product["cover_photo"]])
    return {"message": "Images uploaded successfully", "product": populate_products(database, [updated])[0]}


@router.patch("/products/{product_id}/remove-image", dependencies=[Depends(require_admin)])
def remove_product_image(
    product_id: str,
    payload: RemoveImage,
    database: Database = Depends(get_db),
    asset_storage: LocalAssetStorage = Depends(get_storage),
):
    product = get_or_404(database, "product", product_id, "Product")
    changes: Dict[str, Any] = {}
    if product.get("cover_photo") == payload.image_url:
        changes["cover_photo"] = None
    if payload.image_url in product.get("images", []):
        changes["images"] = [img for img in product["images"] if img != payload.image_url]
    if not changes:
        raise NotFound("Image not found on product")

    updated = apply_update(database, "product", product, changes)
    discard_assets(asset_storage, [payload.image_url])
    return {"message": "Image removed successfully", "product": populate_products(database, [updated])[0]}


@router.delete("/products/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(
    product_id: str,
    database: Database = Depends(get_db),
    asset_storage: LocalAssetStorage = Depends(get_storage),
):
    product = get_or_404(database, "product", product_id, "Product")
    database["product"].delete_one({"_id": product["_id"]})
    discard_assets(asset_storage, [product.get("cover_photo"), *product.get("images", [])])
    logger.info("Product %s (%s) deleted", product["_id"], product.get("sku"))
    return {"message": "Product deleted successfully"}


# -----------------------------
# Priorities
# -----------------------------
@router.get("/priorities")
def get_all_priorities(database: Database = Depends(get_db)):
    priorities = list_priorities(database)
    return {"count": len(priorities), "priorities": priorities}


@router.get("/priorities/type/{type}")
def get_priorities_by_type(type: str, database: Database = Depends(get_db)):
    priorities = list_priorities(database, type)
    return {"count": len(priorities), "priorities": priorities}


@router.get("/priorities/object/{type}/{object_id}")
def get_object_priority(type: str, object_id: str, database: Database = Depends(get_db)):
    return {"priority": get_priority_by_object(database, type, object_id)}


@router.get("/priorities/{priority_id}")
def get_priority_by_id(priority_id: str, database: Database = Depends(get_db)):
    return {"priority": get_priority(database, priority_id)}


@router.post("/priorities", status_code=201, dependencies=[Depends(require_admin)])
def add_priority(payload: Priority, database: Database = Depends(get_db)):
    priority = create_priority(database, payload.name, payload.type, payload.object_id, payload.priority)
    return {"message": "Priority created successfully", "priority": priority}


@router.put("/priorities/{priority_id}", dependencies=[Depends(require_admin)])
def edit_priority(priority_id: str, payload: PriorityUpdate, database: Database = Depends(get_db)):
    priority = update_priority(database, priority_id, changes_of(payload))
    return {"message": "Priority updated successfully", "priority": priority}


@router.delete("/priorities/{priority_id}", dependencies=[Depends(require_admin)])
def remove_priority(priority_id: str, database: Database = Depends(get_db)):
    return {"message": "Priority deleted successfully", "priority": delete_priority(database, priority_id)}


# -----------------------------
# Slug lookups
# -----------------------------
@router.get("/unified/find-id/{slug}")
def find_id_by_slug(slug: str, database: Database = Depends(get_db)):
    item = resolve_slug(database, slug)
    if item is None:
        raise NotFound("Item not found")
    return {"item": item}


@router.get("/unified/item/{slug}")
def get_item_by_slug(slug: str, database: Database = Depends(get_db)):
    item = resolve_slug(database, slug, populate=True)
    if item is None:
        raise NotFound("Item not found")
    return {"item": item}


@router.post("/unified/update-dashed-names", dependencies=[Depends(require_admin)])
def update_dashed_names(database: Database = Depends(get_db)):
    results = refresh_dashed_names(database)
    updated = sum(r["updated"] for r in results.values())
    errors = sum(len(r["errors"]) for r in results.values())
    return {"message": f"Dashed names updated. {updated} records updated, {errors} errors.", "results": results}


# -----------------------------
# Pages
# -----------------------------
@router.get("/page")
def list_pages(database: Database = Depends(get_db)):
    return {"pages": serialize(get_documents(database, "page", sort=[("title", ASCENDING)]))}


@router.get("/page/slug/{slug}")
def get_page_by_slug(slug: str, database: Database = Depends(get_db)):
    page = database["page"].find_one({"slug": slug, "is_active": True})
    if page is None:
        raise NotFound("Page not found")
    return {"page": serialize(page)}


@router.get("/page/title/{title}")
def get_page_by_title(title: str, database: Database = Depends(get_db)):
    page = database["page"].find_one({"title": title, "is_active": True})
    if page is None:
        raise NotFound("Page not found")
    return {"page": serialize(page)}


@router.post("/page/upsert", dependencies=[Depends(require_admin)])
def upsert_page(payload: Page, database: Database = Depends(get_db)):
    now = utcnow()
    with duplicate_guard("Page title or slug already exists"):
        page = database["page"].find_one_and_update(
            {"title": payload.title},
            {
                "$set": {**payload.model_dump(), "slug": dashed_name(payload.title), "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    return {"message": "Page saved successfully", "page": serialize(page)}


@router.delete("/page/{page_id}", dependencies=[Depends(require_admin)])
def delete_page(page_id: str, database: Database = Depends(get_db)):
    page = get_or_404(database, "page", page_id, "Page")
    database["page"].delete_one({"_id": page["_id"]})
    return {"message": "Page deleted successfully"}


# -----------------------------
# Content blocks
# -----------------------------
@router.get("/content")
def list_content(database: Database = Depends(get_db)):
    content = get_documents(database, "content", sort=[("priority", DESCENDING), ("created_at", DESCENDING)])
    return {"count": len(content), "content": serialize(content)}


@router.get("/content/{content_id}")
def get_content(content_id: str, database: Database = Depends(get_db)):
    return {"content": serialize(get_or_404(database, "content", content_id, "Content"))}


@router.post("/content", status_code=201, dependencies=[Depends(require_admin)])
def create_content(payload: Content, database: Database = Depends(get_db)):
    doc = create_document(database, "content", payload)
    return {"message": "Content created successfully", "content": serialize(doc)}


@router.put("/content/{content_id}", dependencies=[Depends(require_admin)])
def update_content(content_id: str, payload: ContentUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "content", content_id, "Content")
    updated = apply_update(database, "content", existing, changes_of(payload))
    return {"message": "Content updated successfully", "content": serialize(updated)}


@router.delete("/content/{content_id}", dependencies=[Depends(require_admin)])
def delete_content(content_id: str, database: Database = Depends(get_db)):
    content = get_or_404(database, "content", content_id, "Content")
    database["content"].delete_one({"_id": content["_id"]})
    return {"message": "Content deleted successfully", "content": serialize(content)}


# -----------------------------
# Enquiries (quote requests)
# -----------------------------
ENQUIRY_PRODUCT_FIELDS = {"name": 1, "sku": 1, "price": 1, "sale_price": 1, "cover_photo": 1, "dashed_name": 1}


def populate_enquiries(database: Database, enquiries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = {item["product"] for e in enquiries for item in e.get("products", [])}
    products = {}
    if ids:
        products = {p["_id"]: p for p in database["product"].find({"_id": {"$in": list(ids)}}, ENQUIRY_PRODUCT_FIELDS)}
    out = []
    for enquiry in enquiries:
        item = serialize(enquiry)
        item["products"] = [
            {"product": serialize(products.get(line["product"])) or {"id": str(line["product"])}, "quantity": line["quantity"]}
            for line in enquiry.get("products", [])
        ]
        out.append(item)
    return out


@router.post("/enquiry", status_code=201)
def submit_enquiry(payload: Enquiry, background_tasks: BackgroundTasks, database: Database = Depends(get_db)):
    lines = [{"product": to_object_id(line.product, "product"), "quantity": line.quantity} for line in payload.products]
    wanted = {line["product"] for line in lines}
    found = {p["_id"] for p in database["product"].find({"_id": {"$in": list(wanted)}}, {"_id": 1})}
    missing = wanted - found
    if missing:
        raise ReferentNotFound(f"Product not found: {', '.join(sorted(str(m) for m in missing))}")

    data = {
        **payload.model_dump(exclude={"products"}),
        "email": payload.email.lower(),
        "products": lines,
        "status": "pending",
        "notes": None,
        "admin_notes": None,
        "response_message": None,
        "responded_at": None,
    }
    enquiry = create_enquiry(database, data)
    populated = populate_enquiries(database, [enquiry])[0]
    background_tasks.add_task(mailer.notify_new_quote, database, populated, populated["products"])
    return {"message": "Enquiry submitted successfully", "enquiry": populated}


@router.get("/enquiry", dependencies=[Depends(require_admin)])
def list_enquiries(
    status: Optional[EnquiryStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    database: Database = Depends(get_db),
):
    filter_dict = {"status": status} if status else {}
    total = database["enquiry"].count_documents(filter_dict)
    docs = get_documents(database, "enquiry", filter_dict, sort=NEWEST_FIRST, skip=(page - 1) * limit, limit=limit)
    return paginated("enquiries", populate_enquiries(database, docs), total, page, limit)


@router.get("/enquiry/{enquiry_id}", dependencies=[Depends(require_admin)])
def get_enquiry(enquiry_id: str, database: Database = Depends(get_db)):
    enquiry = get_or_404(database, "enquiry", enquiry_id, "Enquiry")
    return {"enquiry": populate_enquiries(database, [enquiry])[0]}


@router.put("/enquiry/{enquiry_id}/status", dependencies=[Depends(require_admin)])
def update_enquiry_status(enquiry_id: str, payload: EnquiryStatusUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "enquiry", enquiry_id, "Enquiry")
    changes = changes_of(payload)
    if changes.get("status") == "responded" and existing.get("status") != "responded":
        changes["responded_at"] = utcnow()
    updated = apply_update(database, "enquiry", existing, changes)
    return {"message": "Enquiry status updated successfully", "enquiry": populate_enquiries(database, [updated])[0]}


@router.delete("/enquiry/{enquiry_id}", dependencies=[Depends(require_admin)])
def delete_enquiry(enquiry_id: str, database: Database = Depends(get_db)):
    enquiry = get_or_404(database, "enquiry", enquiry_id, "Enquiry")
    database["enquiry"].delete_one({"_id": enquiry["_id"]})
    logger.info("Enquiry %s deleted", enquiry["enquiry_number"])
    return {"message": "Enquiry deleted successfully"}


# -----------------------------
# Contact messages
# -----------------------------
@router.post("/contacts", status_code=201)
def create_contact(payload: Contact, database: Database = Depends(get_db)):
    doc = {**payload.model_dump(), "email": payload.email.lower(), "status": "new", "notes": None}
    doc = create_document(database, "contact", doc)
    return {"message": "Message sent successfully", "contact": serialize(doc)}


@router.get("/contacts", dependencies=[Depends(require_admin)])
def list_contacts(
    status: Optional[ContactStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    database: Database = Depends(get_db),
):
    filter_dict = {"status": status} if status else {}
    total = database["contact"].count_documents(filter_dict)
    docs = get_documents(database, "contact", filter_dict, sort=NEWEST_FIRST, skip=(page - 1) * limit, limit=limit)
    return paginated("contacts", serialize(docs), total, page, limit)


@router.get("/contacts/{contact_id}", dependencies=[Depends(require_admin)])
def get_contact(contact_id: str, database: Database = Depends(get_db)):
    return {"contact": serialize(get_or_404(database, "contact", contact_id, "Contact"))}


@router.put("/contacts/{contact_id}/status", dependencies=[Depends(require_admin)])
def update_contact_status(contact_id: str, payload: ContactStatusUpdate, database: Database = Depends(get_db)):
    existing = get_or_404(database, "contact", contact_id, "Contact")
    updated = apply_update(database, "contact", existing, changes_of(payload))
    return {"message": "Contact status updated successfully", "contact": serialize(updated)}


@router.delete("/contacts/{contact_id}", dependencies=[Depends(require_admin)])
def delete_contact(contact_id: str, database: Database = Depends(get_db)):
    contact = get_or_404(database, "contact", contact_id, "Contact")
    database["contact"].delete_one({"_id": contact["_id"]})
    return {"message": "Contact deleted successfully"}


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
