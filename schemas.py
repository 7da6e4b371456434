"""
Database Schemas for the Lesson Sharing Platform

Each Pydantic model corresponds to a MongoDB collection or a request body.
Collection names are the lowercase of the record class name (e.g.
Lesson -> "lesson").

Field names follow the camelCase keys stored in MongoDB and used by the web
client, so models can be dumped straight into documents.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime

Privacy = Literal["public", "private"]
AccessLevel = Literal["free", "premium"]
Role = Literal["user", "admin"]


# Users (keyed by email from the identity provider)
class User(BaseModel):
    email: EmailStr = Field(..., description="Unique natural key")
    name: Optional[str] = Field(None, description="Display name")
    image: Optional[str] = Field(None, description="Profile image URL")
    role: Role = Field("user")
    isPremium: bool = Field(False)
    lessonCount: int = Field(0, ge=0, description="Live lessons authored")
    last_loggedIn: Optional[datetime] = None
    premiumSince: Optional[datetime] = None


class UserUpsert(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    image: Optional[str] = None


class RoleUpdate(BaseModel):
    email: EmailStr
    role: str


# Lessons
class LessonCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str
    emotionalTone: str
    privacy: Privacy = "public"
    accessLevel: AccessLevel = "free"
    image: Optional[str] = None
    authorEmail: EmailStr
    authorName: Optional[str] = None
    authorImage: Optional[str] = None


class Lesson(LessonCreate):
    authorLessonCount: int = Field(..., ge=1, description="Author's lesson count when this was posted")
    likes: List[str] = Field(default_factory=list, description="Emails of users who liked it")
    likesCount: int = Field(0, ge=0)
    favoritesCount: int = Field(0, ge=0)
    isFeatured: bool = False
    isReviewed: bool = False


class LessonUpdate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str
    emotionalTone: str
    privacy: Privacy
    accessLevel: AccessLevel
    image: Optional[str] = None


class FeatureUpdate(BaseModel):
    isFeatured: bool = True


class ReviewUpdate(BaseModel):
    isReviewed: bool = True


# Favorites keep a cached copy of the lesson metadata at save time
class FavoriteToggle(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    emotionalTone: Optional[str] = None
    accessLevel: Optional[str] = None


class Favorite(BaseModel):
    lessonId: str
    userEmail: EmailStr
    title: Optional[str] = None
    category: Optional[str] = None
    emotionalTone: Optional[str] = None
    accessLevel: Optional[str] = None
    saved_at: datetime


# Comments on lessons
class Comment(BaseModel):
    lessonId: str
    comment: str = Field(..., min_length=1)
    userEmail: EmailStr
    userName: Optional[str] = None
    userImage: Optional[str] = None


# Moderation reports; required fields are checked by the report handler so
# that a missing field is a 400 rather than a schema error
class ReportRequest(BaseModel):
    lessonId: Optional[str] = None
    lessonTitle: Optional[str] = None
    reporterEmail: Optional[str] = None
    reporterName: Optional[str] = None
    reason: Optional[str] = None


class ReportEntry(BaseModel):
    reporterEmail: str
    reporterName: str
    reason: str
    reportedAt: datetime


# Payments
class CheckoutRequest(BaseModel):
    price: float = Field(..., description="Price in major currency units")
    userEmail: EmailStr
    userName: Optional[str] = None


class PaymentSuccessRequest(BaseModel):
    sessionId: Optional[str] = None


class Payment(BaseModel):
    transactionId: str = Field(..., description="Stripe payment intent id")
    userEmail: EmailStr
    userName: Optional[str] = None
    amount: float = Field(..., ge=0)
    currency: str
    paidAt: datetime
