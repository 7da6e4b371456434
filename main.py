import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import stripe
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError

import database
from auth import canonical_email, is_admin, optional_principal, require_admin, verify_token
from database import create_document, get_db, get_documents, now, serialize
from engagement import list_favorites, remove_favorite, toggle_favorite, toggle_like
from lessons import (
    author_lessons,
    create_lesson,
    delete_lesson,
    featured_lessons,
    get_lesson,
    list_lessons,
    set_flag,
    similar_lessons,
    update_lesson,
)
from payments import create_checkout_session, reconcile_payment
from reports import get_report, list_reports, resolve_ignore, resolve_remove, submit_report
from schemas import (
    CheckoutRequest,
    Comment,
    FavoriteToggle,
    FeatureUpdate,
    LessonCreate,
    LessonUpdate,
    PaymentSuccessRequest,
    ReportRequest,
    ReviewUpdate,
    RoleUpdate,
    User,
    UserUpsert,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            database.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error("Could not create indexes: %s", e)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
    yield


app = FastAPI(title="Lesson Sharing Platform API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("CLIENT_DOMAIN", "*")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - start) * 1000)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_id=%s method=%s path=%s status=%s duration_ms=%s",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


@app.exception_handler(stripe.StripeError)
async def stripe_error_handler(request: Request, exc: stripe.StripeError):
    logger.exception("Stripe error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Payment provider error"})


def ensure_owner_or_admin(db, lesson: dict, email: str) -> None:
    if lesson.get("authorEmail") != email and not is_admin(db, email):
        raise HTTPException(status_code=403, detail="Not your lesson")


@app.get("/")
def read_root():
    return {"message": "Lesson Sharing Platform API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "❌ Not Set" if not os.getenv("DATABASE_URL") else "✅ Set",
        "database_name": "❌ Not Set" if not os.getenv("DATABASE_NAME") else "✅ Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except PyMongoError as e:
        response["database"] = f"⚠️ Error: {str(e)[:80]}"
    return response


# --- Lessons ---
@app.post("/lessons")
def add_lesson(lesson: LessonCreate, email: str = Depends(verify_token), db=Depends(get_db)):
    if lesson.authorEmail != email:
        raise HTTPException(status_code=403, detail="Lessons can only be posted as yourself")
    return create_lesson(db, lesson)


@app.get("/lessons")
def get_lessons(
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    category: Optional[str] = None,
    emotionalTone: Optional[str] = None,
    sortBy: str = Query("newest", pattern="^(newest|mostSaved|title)$"),
    search: Optional[str] = None,
    admin: bool = False,
    reportedOnly: bool = False,
    principal: Optional[str] = Depends(optional_principal),
    db=Depends(get_db),
):
    if (admin or reportedOnly) and not is_admin(db, principal):
        raise HTTPException(status_code=403, detail="Admin only")
    return list_lessons(
        db,
        limit=limit,
        skip=skip,
        category=category,
        emotional_tone=emotionalTone,
        sort_by=sortBy,
        search=search,
        include_private=admin,
        reported_only=reportedOnly,
    )


@app.get("/lessons/similar")
def get_similar_lessons(
    category: Optional[str] = None,
    emotionalTone: Optional[str] = None,
    lessonId: Optional[str] = None,
    db=Depends(get_db),
):
    return similar_lessons(db, category, emotionalTone, lessonId)


@app.get("/lessons/featured")
def get_featured_lessons(db=Depends(get_db)):
    return featured_lessons(db)


@app.get("/lessons/author/{email}")
def get_author_lessons(email: str, db=Depends(get_db)):
    return author_lessons(db, canonical_email(email))


@app.get("/lesson-details/{lesson_id}")
def lesson_details(lesson_id: str, db=Depends(get_db)):
    return serialize(get_lesson(db, lesson_id))


@app.get("/my-lessons/{email}")
def my_lessons(email: str, principal: str = Depends(verify_token), db=Depends(get_db)):
    email = canonical_email(email)
    if email != principal and not is_admin(db, principal):
        raise HTTPException(status_code=403, detail="Forbidden")
    return author_lessons(db, email, public_only=False)


@app.patch("/my-lesson/{lesson_id}")
def edit_lesson(lesson_id: str, body: LessonUpdate, email: str = Depends(verify_token), db=Depends(get_db)):
    ensure_owner_or_admin(db, get_lesson(db, lesson_id), email)
    return update_lesson(db, lesson_id, body)


@app.delete("/my-lesson/{lesson_id}")
def remove_lesson(lesson_id: str, email: str = Depends(verify_token), db=Depends(get_db)):
    ensure_owner_or_admin(db, get_lesson(db, lesson_id), email)
    delete_lesson(db, lesson_id)
    return {"deletedCount": 1}


@app.patch("/lesson/{lesson_id}/feature")
def feature_lesson(lesson_id: str, body: FeatureUpdate, _: str = Depends(require_admin), db=Depends(get_db)):
    return set_flag(db, lesson_id, "isFeatured", body.isFeatured)


@app.patch("/lesson/{lesson_id}/reviewed")
def review_lesson(lesson_id: str, body: ReviewUpdate, _: str = Depends(require_admin), db=Depends(get_db)):
    return set_flag(db, lesson_id, "isReviewed", body.isReviewed)


# --- Engagement ---
@app.post("/lesson/{lesson_id}/like")
def like_lesson(lesson_id: str, email: str = Depends(verify_token), db=Depends(get_db)):
    return toggle_like(db, lesson_id, email)


@app.post("/lesson/{lesson_id}/favorite")
def favorite_lesson(
    lesson_id: str,
    body: Optional[FavoriteToggle] = None,
    email: str = Depends(verify_token),
    db=Depends(get_db),
):
    return toggle_favorite(db, lesson_id, email, body or FavoriteToggle())


@app.get("/favorites/{email}")
def my_favorites(email: str, principal: str = Depends(verify_token), db=Depends(get_db)):
    email = canonical_email(email)
    if email != principal and not is_admin(db, principal):
        raise HTTPException(status_code=403, detail="Forbidden")
    return list_favorites(db, email)


@app.delete("/my-favorites/{favorite_id}")
def delete_favorite(favorite_id: str, email: str = Depends(verify_token), db=Depends(get_db)):
    return remove_favorite(db, favorite_id, email, admin=is_admin(db, email))


# --- Comments ---
@app.post("/comments")
def add_comment(comment: Comment, email: str = Depends(verify_token), db=Depends(get_db)):
    if comment.userEmail != email:
        raise HTTPException(status_code=403, detail="Comments can only be posted as yourself")
    get_lesson(db, comment.lessonId)
    inserted_id = create_document(db, "comment", comment)
    return {"insertedId": inserted_id}


@app.get("/comments/{lesson_id}")
def get_comments(lesson_id: str, db=Depends(get_db)):
    cursor = db["comment"].find({"lessonId": lesson_id}).sort("created_at", 1)
    return [serialize(doc) for doc in cursor]


# --- Users ---
@app.post("/user")
def save_user(body: UserUpsert, email: str = Depends(verify_token), db=Depends(get_db)):
    if body.email != email:
        raise HTTPException(status_code=403, detail="Forbidden")
    stamp = now()
    existing = db["user"].find_one({"email": body.email})
    if not existing:
        user = User(**body.model_dump(), last_loggedIn=stamp)
        try:
            inserted_id = create_document(db, "user", user)
            logger.info("Saved new user %s", body.email)
            return {"insertedId": inserted_id}
        except DuplicateKeyError:
            logger.info("User %s created concurrently, updating login time", body.email)
    result = db["user"].update_one({"email": body.email}, {"$set": {"last_loggedIn": stamp}})
    return {"matchedCount": result.matched_count, "modifiedCount": result.modified_count}


@app.get("/users")
def get_users(admin_email: str = Depends(require_admin), db=Depends(get_db)):
    return [serialize(doc) for doc in get_documents(db, "user", {"email": {"$ne": admin_email}})]


@app.delete("/users/{email}")
def delete_user(email: str, _: str = Depends(require_admin), db=Depends(get_db)):
    result = db["user"].delete_one({"email": canonical_email(email)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"deletedCount": result.deleted_count}


@app.patch("/update-role")
def update_role(body: RoleUpdate, _: str = Depends(require_admin), db=Depends(get_db)):
    if body.role not in ("user", "admin"):
        raise HTTPException(status_code=400, detail="Invalid role")
    result = db["user"].update_one({"email": body.email}, {"$set": {"role": body.role}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Role of %s set to %s", body.email, body.role)
    return {"matchedCount": result.matched_count, "modifiedCount": result.modified_count}


@app.get("/user/role")
def user_role(email: str = Depends(verify_token), db=Depends(get_db)):
    user = db["user"].find_one({"email": email}) or {}
    return {"role": user.get("role"), "isPremium": bool(user.get("isPremium", False))}


@app.get("/author/{email}")
def author_info(email: str, db=Depends(get_db)):
    author = db["user"].find_one({"email": canonical_email(email)})
    if not author:
        raise HTTPException(status_code=404, detail="Author not found")
    return {
        "name": author.get("name") or author.get("displayName"),
        "email": author.get("email"),
        "photoURL": author.get("image") or author.get("photoURL"),
        "isPremium": bool(author.get("isPremium", False)),
        "lessonCount": author.get("lessonCount", 0),
    }


# --- Reports ---
@app.post("/reports")
def report_lesson(body: ReportRequest, db=Depends(get_db)):
    return submit_report(db, body)


@app.get("/reports")
def get_reports(_: str = Depends(require_admin), db=Depends(get_db)):
    return list_reports(db)


@app.get("/reports/{lesson_id}")
def get_lesson_report(lesson_id: str, _: str = Depends(require_admin), db=Depends(get_db)):
    return get_report(db, lesson_id)


@app.delete("/reports/{lesson_id}")
def remove_reported_lesson(lesson_id: str, _: str = Depends(require_admin), db=Depends(get_db)):
    return resolve_remove(db, lesson_id)


@app.patch("/reports/ignore/{lesson_id}")
def ignore_report(lesson_id: str, _: str = Depends(require_admin), db=Depends(get_db)):
    return resolve_ignore(db, lesson_id)


# --- Payments ---
@app.post("/create-checkout-session")
def checkout(body: CheckoutRequest, email: str = Depends(verify_token)):
    if body.userEmail != email:
        raise HTTPException(status_code=403, detail="Forbidden")
    return create_checkout_session(body.price, body.userEmail, body.userName)


@app.post("/payment-success")
def payment_success(body: PaymentSuccessRequest, db=Depends(get_db)):
    return reconcile_payment(db, body.sessionId)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
