"""
Like and favorite toggles.

A toggle flips the caller's engagement with a lesson and moves the matching
counter by one in the same step. The client never says whether it wants to
add or remove; the stored state decides.
"""

import logging
from typing import Any, Dict, List

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from database import now, parse_object_id, serialize
from lessons import decrement, get_lesson
from schemas import Favorite, FavoriteToggle

logger = logging.getLogger(__name__)


def toggle_like(db, lesson_id: str, email: str) -> Dict[str, Any]:
    oid = parse_object_id(lesson_id)
    lessons = db["lesson"]

    liked = None
    # a concurrent toggle can slip between the two conditional updates, so
    # try once more before giving up
    for _ in range(2):
        added = lessons.update_one(
            {"_id": oid, "likes": {"$ne": email}},
            {"$push": {"likes": email}, "$inc": {"likesCount": 1}},
        )
        if added.matched_count:
            liked = True
            break
        removed = lessons.update_one(
            {"_id": oid, "likes": email},
            {"$pull": {"likes": email}, "$inc": {"likesCount": -1}},
        )
        if removed.matched_count:
            liked = False
            break
        if not lessons.count_documents({"_id": oid}, limit=1):
            raise HTTPException(status_code=404, detail="Lesson not found")
    if liked is None:
        raise HTTPException(status_code=409, detail="Lesson is being updated, try again")

    lesson = lessons.find_one({"_id": oid}, {"likesCount": 1})
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return {"success": True, "likesCount": lesson.get("likesCount", 0), "userLiked": liked}


def toggle_favorite(db, lesson_id: str, email: str, snapshot: FavoriteToggle) -> Dict[str, Any]:
    lesson = get_lesson(db, lesson_id)
    pair = {"lessonId": lesson_id, "userEmail": email}

    removed = db["favorite"].delete_one(pair)
    if removed.deleted_count:
        decrement(db["lesson"], {"_id": lesson["_id"]}, "favoritesCount")
        favorited = False
    else:
        favorite = Favorite(
            lessonId=lesson_id,
            userEmail=email,
            title=snapshot.title or lesson.get("title"),
            category=snapshot.category or lesson.get("category"),
            emotionalTone=snapshot.emotionalTone or lesson.get("emotionalTone"),
            accessLevel=snapshot.accessLevel or lesson.get("accessLevel"),
            saved_at=now(),
        )
        try:
            db["favorite"].insert_one(favorite.model_dump())
        except DuplicateKeyError:
            # a concurrent request already saved it and bumped the counter
            logger.info("Favorite %s/%s already present", lesson_id, email)
        else:
            db["lesson"].update_one({"_id": lesson["_id"]}, {"$inc": {"favoritesCount": 1}})
        favorited = True

    updated = db["lesson"].find_one({"_id": lesson["_id"]}, {"favoritesCount": 1}) or {}
    return {"success": True, "favoritesCount": updated.get("favoritesCount", 0), "userFavorited": favorited}


def remove_favorite(db, favorite_id: str, email: str, admin: bool = False) -> Dict[str, Any]:
    query = {"_id": parse_object_id(favorite_id)}
    favorite = db["favorite"].find_one(query)
    if not favorite:
        raise HTTPException(status_code=404, detail="Favorite not found")
    if favorite.get("userEmail") != email and not admin:
        raise HTTPException(status_code=403, detail="Not your favorite")

    result = db["favorite"].delete_one(query)
    if result.deleted_count:
        decrement(db["lesson"], {"_id": parse_object_id(favorite["lessonId"])}, "favoritesCount")
    return {"deletedCount": result.deleted_count}


def list_favorites(db, email: str) -> List[dict]:
    return [serialize(doc) for doc in db["favorite"].find({"userEmail": email}).sort("saved_at", -1)]
