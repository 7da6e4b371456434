"""
Moderation reports.

Each reported lesson has one report record that collects every complaint in
submission order. A moderator closes it either by removing the lesson or by
ignoring the complaints; both drop the record.
"""

import logging
from typing import Any, Dict, List

from bson import ObjectId
from fastapi import HTTPException
from pymongo import DESCENDING

from database import now, serialize
from lessons import delete_lesson, get_lesson
from schemas import ReportEntry, ReportRequest

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("lessonId", "reporterEmail", "reporterName", "reason")


def submit_report(db, payload: ReportRequest) -> Dict[str, Any]:
    if any(not getattr(payload, field) for field in REQUIRED_FIELDS):
        raise HTTPException(status_code=400, detail="Missing fields")
    lesson = get_lesson(db, payload.lessonId)

    entry = ReportEntry(
        reporterEmail=payload.reporterEmail,
        reporterName=payload.reporterName,
        reason=payload.reason,
        reportedAt=now(),
    )
    result = db["report"].update_one(
        {"lessonId": payload.lessonId},
        {
            "$setOnInsert": {
                "lessonTitle": payload.lessonTitle or lesson.get("title"),
                "created_at": entry.reportedAt,
            },
            "$push": {"reportReasons": entry.model_dump()},
            "$inc": {"totalReports": 1},
        },
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("Lesson %s reported for the first time", payload.lessonId)
        return {"success": True, "message": "Report created", "insertedId": str(result.upserted_id)}
    return {"success": True, "message": "Report added to existing lesson"}


def list_reports(db) -> List[dict]:
    return [serialize(doc) for doc in db["report"].find().sort("totalReports", DESCENDING)]


def get_report(db, lesson_id: str) -> dict:
    return serialize(db["report"].find_one({"lessonId": lesson_id}))


def resolve_remove(db, lesson_id: str) -> Dict[str, Any]:
    result = db["report"].delete_one({"lessonId": lesson_id})
    lesson_deleted = False
    if ObjectId.is_valid(lesson_id):
        try:
            delete_lesson(db, lesson_id)
            lesson_deleted = True
        except HTTPException as e:
            if e.status_code != 404:
                raise
            logger.warning("Reported lesson %s was already gone", lesson_id)
    logger.info("Report on %s resolved by removing the lesson", lesson_id)
    return {"success": True, "lessonDeleted": lesson_deleted, "deletedCount": result.deleted_count}


def resolve_ignore(db, lesson_id: str) -> Dict[str, Any]:
    result = db["report"].delete_one({"lessonId": lesson_id})
    if result.deleted_count:
        logger.info("Report on %s ignored", lesson_id)
    return {"success": True, "message": "Report ignored & removed", "deletedCount": result.deleted_count}
