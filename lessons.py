"""
Lesson storage with author counter maintenance, plus the listing queries.

Author ``lessonCount`` is kept in step with live lessons: every create and
delete adjusts it within the same call using single-document atomic updates.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from database import create_document, now, parse_object_id, serialize
from schemas import Lesson, LessonCreate, LessonUpdate

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "newest": [("created_at", DESCENDING)],
    "mostSaved": [("favoritesCount", DESCENDING), ("created_at", DESCENDING)],
    "title": [("title", ASCENDING)],
}
SIMILAR_LIMIT = 6


def decrement(collection, query: dict, field: str) -> None:
    """Decrease a counter by one without letting it drop below zero."""
    collection.update_one({**query, field: {"$gt": 0}}, {"$inc": {field: -1}})


def get_lesson(db, lesson_id: str) -> dict:
    lesson = db["lesson"].find_one({"_id": parse_object_id(lesson_id)})
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


def create_lesson(db, data: LessonCreate) -> dict:
    author = db["user"].find_one_and_update(
        {"email": data.authorEmail},
        {"$inc": {"lessonCount": 1}},
        projection={"lessonCount": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not author:
        raise HTTPException(status_code=404, detail="Author not found")

    lesson = Lesson(**data.model_dump(), authorLessonCount=author["lessonCount"])
    try:
        inserted_id = create_document(db, "lesson", lesson)
    except PyMongoError:
        decrement(db["user"], {"email": data.authorEmail}, "lessonCount")
        raise
    logger.info("Lesson %s created by %s (#%s)", inserted_id, data.authorEmail, author["lessonCount"])
    return {"insertedId": inserted_id, "authorLessonCount": author["lessonCount"]}


def delete_lesson(db, lesson_id: str) -> dict:
    lesson = db["lesson"].find_one_and_delete({"_id": parse_object_id(lesson_id)})
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    decrement(db["user"], {"email": lesson.get("authorEmail")}, "lessonCount")
    db["report"].delete_one({"lessonId": lesson_id})
    logger.info("Lesson %s deleted (author %s)", lesson_id, lesson.get("authorEmail"))
    return lesson


def update_lesson(db, lesson_id: str, data: LessonUpdate) -> Dict[str, Any]:
    updates = data.model_dump(exclude={"image"})
    if data.image:
        updates["image"] = data.image
    updates["last_update_at"] = now()
    result = db["lesson"].update_one({"_id": parse_object_id(lesson_id)}, {"$set": updates})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return {"matchedCount": result.matched_count, "modifiedCount": result.modified_count}


def set_flag(db, lesson_id: str, field: str, value: bool) -> Dict[str, Any]:
    result = db["lesson"].update_one(
        {"_id": parse_object_id(lesson_id)},
        {"$set": {field: value, "last_update_at": now()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return {"success": True, field: value}


def list_lessons(
    db,
    limit: int = 20,
    skip: int = 0,
    category: Optional[str] = None,
    emotional_tone: Optional[str] = None,
    sort_by: str = "newest",
    search: Optional[str] = None,
    include_private: bool = False,
    reported_only: bool = False,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if not (include_private or reported_only):
        query["privacy"] = "public"
    if category:
        query["category"] = category
    if emotional_tone:
        query["emotionalTone"] = emotional_tone
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}]
    if reported_only:
        reported = [r["lessonId"] for r in db["report"].find({}, {"lessonId": 1})]
        query["_id"] = {"$in": [parse_object_id(i) for i in reported]}

    total = db["lesson"].count_documents(query)
    cursor = (
        db["lesson"]
        .find(query)
        .sort(SORT_OPTIONS.get(sort_by, SORT_OPTIONS["newest"]))
        .skip(skip)
        .limit(limit)
    )
    return {"items": [serialize(doc) for doc in cursor], "total": total}


def similar_lessons(db, category: Optional[str], emotional_tone: Optional[str], lesson_id: Optional[str]) -> List[dict]:
    if not category and not emotional_tone:
        return []
    alternatives = []
    if category:
        alternatives.append({"category": category})
    if emotional_tone:
        alternatives.append({"emotionalTone": emotional_tone})
    query: Dict[str, Any] = {"privacy": "public", "$or": alternatives}
    if lesson_id:
        query["_id"] = {"$ne": parse_object_id(lesson_id)}
    return [serialize(doc) for doc in db["lesson"].find(query).limit(SIMILAR_LIMIT)]


def featured_lessons(db, limit: int = 12) -> List[dict]:
    cursor = db["lesson"].find({"isFeatured": True, "privacy": "public"}).sort("created_at", DESCENDING).limit(limit)
    return [serialize(doc) for doc in cursor]


def author_lessons(db, email: str, public_only: bool = True) -> List[dict]:
    query: Dict[str, Any] = {"authorEmail": email}
    if public_only:
        query["privacy"] = "public"
    return [serialize(doc) for doc in db["lesson"].find(query).sort("created_at", DESCENDING)]
