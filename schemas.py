"""
Database Schemas for the catalog back-office

Each Pydantic model represents a MongoDB collection. The collection name is the lowercase of the class name.
The matching ``*Update`` models carry partial updates: every field is optional and only the fields
a client sends are applied.

Collections:
- Brand
- Category
- SubCategory
- Product
- Priority
- Enquiry
- Contact
- Page
- Content
- User
"""

from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, StringConstraints

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Text = Annotated[str, StringConstraints(strip_whitespace=True)]

EnquiryStatus = Literal["pending", "responded", "completed", "cancelled"]
EnquiryPriority = Literal["low", "medium", "high"]
ContactStatus = Literal["new", "read", "replied", "archived"]
Role = Literal["User", "Admin"]


# Catalog

class Brand(BaseModel):
    name: Name = Field(..., description="Brand name, unique")
    description_title: Text = Field("", description="Heading shown above the description")
    description: Text = ""


class BrandUpdate(BaseModel):
    name: Optional[Name] = None
    description_title: Optional[Text] = None
    description: Optional[Text] = None


class Category(BaseModel):
    name: Name = Field(..., description="Category name, unique")
    description_title: Text = ""
    description: Text = ""


class CategoryUpdate(BrandUpdate):
    pass


class SubCategory(BaseModel):
    name: Name
    category: str = Field(..., description="ID of the owning category")
    description_title: Text = ""
    description: Text = ""


class SubCategoryUpdate(BaseModel):
    name: Optional[Name] = None
    category: Optional[str] = None
    description_title: Optional[Text] = None
    description: Optional[Text] = None


class Ratings(BaseModel):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class Product(BaseModel):
    name: Name = Field(..., description="Product name")
    description: str = Field(..., description="Long description")
    price: float = Field(..., ge=0, description="List price")
    sale_price: Optional[float] = Field(None, ge=0, description="Discounted price, if any")
    brand: str = Field(..., description="Brand ID")
    category: str = Field(..., description="Category ID")
    sub_category: str = Field(..., description="SubCategory ID, must belong to the category")
    quantity: int = Field(0, ge=0, description="Units in stock")
    cover_photo: Optional[str] = Field(None, description="Cover image URL")
    images: List[str] = Field(default_factory=list, description="Gallery image URLs")
    features: List[str] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict)
    ratings: Ratings = Field(default_factory=Ratings)
    is_active: bool = Field(True, description="Whether product is listed publicly")
    is_featured: bool = False
    sku: Name = Field(..., description="Stock keeping unit, unique")
    tab_description: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[Name] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    brand: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    cover_photo: Optional[str] = None
    images: Optional[List[str]] = None
    features: Optional[List[str]] = None
    specifications: Optional[Dict[str, str]] = None
    ratings: Optional[Ratings] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    sku: Optional[Name] = None
    tab_description: Optional[str] = None


class QuantityUpdate(BaseModel):
    quantity: int = Field(..., ge=0)
    operation: Literal["add", "subtract", "set"]


class RemoveImage(BaseModel):
    image_url: str


class Priority(BaseModel):
    name: Name
    type: str = Field(..., description="Brand | Category | Subcategory")
    object_id: str = Field(..., description="ID of the referenced brand, category or subcategory")
    priority: int = Field(0, ge=0, description="Higher ranks are listed first")


class PriorityUpdate(BaseModel):
    name: Optional[Name] = None
    type: Optional[str] = None
    object_id: Optional[str] = None
    priority: Optional[int] = Field(None, ge=0)


# Enquiries and contact messages

class EnquiryItem(BaseModel):
    product: str = Field(..., description="Product ID")
    quantity: int = Field(1, ge=1)


class Enquiry(BaseModel):
    products: List[EnquiryItem] = Field(..., min_length=1)
    name: Name
    email: EmailStr
    phone: Optional[Text] = None
    company: Optional[Text] = None
    country: Optional[Text] = None
    message: str = ""
    priority: EnquiryPriority = "medium"


class EnquiryStatusUpdate(BaseModel):
    status: Optional[EnquiryStatus] = None
    priority: Optional[EnquiryPriority] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    response_message: Optional[str] = None


class Contact(BaseModel):
    name: Name
    email: EmailStr
    phone: Optional[Text] = None
    subject: Optional[Text] = None
    message: Name


class ContactStatusUpdate(BaseModel):
    status: ContactStatus
    notes: Optional[str] = None


# Site content

class Page(BaseModel):
    title: Name = Field(..., description="Page title, unique; the slug is derived from it")
    content: str
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    is_active: bool = True


class Content(BaseModel):
    title: Name
    description: Name
    priority: int = Field(0, ge=0)


class ContentUpdate(BaseModel):
    title: Optional[Name] = None
    description: Optional[Name] = None
    priority: Optional[int] = Field(None, ge=0)


# Users

class User(BaseModel):
    name: Name
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[Text] = None


class AdminUser(BaseModel):
    name: Name
    email: EmailStr
    password: Optional[str] = Field(None, min_length=6, description="Generated when omitted")
    phone: Optional[Text] = None


class UserUpdate(BaseModel):
    name: Optional[Name] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[Text] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    name: Optional[Name] = None
    phone: Optional[Text] = None
    password: Optional[str] = Field(None, min_length=6)
