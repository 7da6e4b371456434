from bson import ObjectId


def lesson_body(**overrides):
    body = {
        "title": "Patience",
        "description": "Waiting is a skill",
        "category": "growth",
        "emotionalTone": "calm",
        "privacy": "public",
        "accessLevel": "free",
        "authorEmail": "a@x.com",
    }
    body.update(overrides)
    return body


def test_create_lesson_snapshots_author_count(client, db, login, make_user):
    make_user("a@x.com", lessonCount=2)
    login("a@x.com")

    res = client.post("/lessons", json=lesson_body())

    assert res.status_code == 200
    assert res.json()["authorLessonCount"] == 3
    lesson = db["lesson"].find_one({"_id": ObjectId(res.json()["insertedId"])})
    assert lesson["authorLessonCount"] == 3
    assert lesson["likes"] == [] and lesson["likesCount"] == 0
    assert lesson["favoritesCount"] == 0
    assert db["user"].find_one({"email": "a@x.com"})["lessonCount"] == 3


def test_create_lesson_requires_existing_author(client, db, login):
    login("a@x.com")
    res = client.post("/lessons", json=lesson_body())
    assert res.status_code == 404
    assert db["lesson"].count_documents({}) == 0
    assert db["user"].count_documents({}) == 0


def test_create_lesson_as_someone_else_is_forbidden(client, login, make_user):
    make_user("a@x.com")
    login("b@x.com")
    res = client.post("/lessons", json=lesson_body())
    assert res.status_code == 403


def test_lesson_count_follows_creates_and_deletes(client, db, login, make_user):
    make_user("a@x.com")
    login("a@x.com")
    ids = [client.post("/lessons", json=lesson_body(title=f"L{i}")).json()["insertedId"] for i in range(3)]

    assert client.delete(f"/my-lesson/{ids[0]}").status_code == 200
    assert client.delete(f"/my-lesson/{ids[0]}").status_code == 404
    client.delete(f"/my-lesson/{ids[2]}")

    live = db["lesson"].count_documents({"authorEmail": "a@x.com"})
    assert live == 1
    assert db["user"].find_one({"email": "a@x.com"})["lessonCount"] == live


def test_delete_other_authors_lesson_is_forbidden(client, db, login, make_user, make_lesson):
    make_user("a@x.com", lessonCount=1)
    make_user("b@x.com")
    lesson_id = make_lesson(authorEmail="a@x.com")
    login("b@x.com")

    assert client.delete(f"/my-lesson/{lesson_id}").status_code == 403
    assert db["lesson"].count_documents({}) == 1
    assert db["user"].find_one({"email": "a@x.com"})["lessonCount"] == 1


def test_edit_lesson(client, db, login, make_user, make_lesson):
    make_user("a@x.com")
    lesson_id = make_lesson(authorEmail="a@x.com")
    login("a@x.com")

    body = lesson_body(title="Courage", privacy="private", accessLevel="premium")
    body.pop("authorEmail")
    res = client.patch(f"/my-lesson/{lesson_id}", json=body)

    assert res.status_code == 200
    lesson = db["lesson"].find_one({"_id": ObjectId(lesson_id)})
    assert lesson["title"] == "Courage"
    assert lesson["privacy"] == "private"
    assert "last_update_at" in lesson


def test_lesson_details(client, make_lesson):
    lesson_id = make_lesson()
    res = client.get(f"/lesson-details/{lesson_id}")
    assert res.status_code == 200
    assert res.json()["_id"] == lesson_id
    assert client.get(f"/lesson-details/{ObjectId()}").status_code == 404
    assert client.get("/lesson-details/not-an-id").status_code == 400


def test_list_lessons_public_filters_and_sort(client, make_lesson):
    make_lesson(title="Beta", category="growth")
    make_lesson(title="Alpha", category="growth")
    make_lesson(title="Gamma", category="work")
    make_lesson(title="Hidden", category="growth", privacy="private")

    res = client.get("/lessons", params={"category": "growth", "sortBy": "title"})

    data = res.json()
    assert data["total"] == 2
    assert [l["title"] for l in data["items"]] == ["Alpha", "Beta"]


def test_list_lessons_search_and_paging(client, make_lesson):
    make_lesson(title="Letting go", description="about acceptance")
    make_lesson(title="Focus", description="Let it GO and move on")
    make_lesson(title="Discipline", description="daily habits")

    res = client.get("/lessons", params={"search": "let", "limit": 1, "sortBy": "title"})

    data = res.json()
    assert data["total"] == 2
    assert [l["title"] for l in data["items"]] == ["Focus"]


def test_admin_listing_requires_admin(client, login, make_user, make_lesson):
    make_lesson(privacy="private")
    make_user("u@x.com")
    make_user("boss@x.com", role="admin")

    login("u@x.com")
    assert client.get("/lessons", params={"admin": True}).status_code == 403

    login("boss@x.com")
    res = client.get("/lessons", params={"admin": True})
    assert res.status_code == 200
    assert res.json()["total"] == 1


def test_reported_only_listing(client, db, login, make_user, make_lesson):
    make_user("boss@x.com", role="admin")
    reported = make_lesson(title="Reported")
    make_lesson(title="Clean")
    db["report"].insert_one({"lessonId": reported, "totalReports": 1, "reportReasons": []})
    login("boss@x.com")

    res = client.get("/lessons", params={"admin": True, "reportedOnly": True})

    assert [l["title"] for l in res.json()["items"]] == ["Reported"]


def test_similar_lessons(client, make_lesson):
    own = make_lesson(category="growth")
    for i in range(8):
        make_lesson(title=f"S{i}", category="growth")
    make_lesson(title="Private", category="growth", privacy="private")
    make_lesson(title="Other", category="work", emotionalTone="sad")

    res = client.get("/lessons/similar", params={"category": "growth", "lessonId": own})

    items = res.json()
    assert len(items) == 6
    assert all(l["_id"] != own and l["privacy"] == "public" for l in items)
    assert client.get("/lessons/similar").json() == []


def test_feature_and_review_are_admin_only(client, db, login, make_user, make_lesson):
    lesson_id = make_lesson()
    make_user("u@x.com")
    make_user("boss@x.com", role="admin")

    login("u@x.com")
    assert client.patch(f"/lesson/{lesson_id}/feature", json={"isFeatured": True}).status_code == 403
    assert db["lesson"].find_one({"_id": ObjectId(lesson_id)})["isFeatured"] is False

    login("boss@x.com")
    assert client.patch(f"/lesson/{lesson_id}/feature", json={"isFeatured": True}).status_code == 200
    assert client.patch(f"/lesson/{lesson_id}/reviewed", json={"isReviewed": True}).status_code == 200
    lesson = db["lesson"].find_one({"_id": ObjectId(lesson_id)})
    assert lesson["isFeatured"] is True and lesson["isReviewed"] is True
    assert [l["_id"] for l in client.get("/lessons/featured").json()] == [lesson_id]


def test_author_public_lessons(client, make_user, make_lesson):
    make_user("a@x.com", lessonCount=2, image="http://img")
    make_lesson(authorEmail="a@x.com", title="Open")
    make_lesson(authorEmail="a@x.com", title="Secret", privacy="private")

    lessons = client.get("/lessons/author/a@x.com").json()
    assert [l["title"] for l in lessons] == ["Open"]

    author = client.get("/author/a@x.com").json()
    assert author["photoURL"] == "http://img"
    assert author["lessonCount"] == 2
    assert client.get("/author/nobody@x.com").status_code == 404


def test_mixed_case_author_can_post(client, db, login, make_user):
    make_user("a@X.COM", lessonCount=2)
    login("a@X.COM")

    res = client.post("/lessons", json=lesson_body(authorEmail="a@X.COM"))

    assert res.status_code == 200
    assert res.json()["authorLessonCount"] == 3
    assert db["user"].find_one({"email": "a@x.com"})["lessonCount"] == 3
    assert len(client.get("/my-lessons/a@X.COM").json()) == 1


def test_failed_insert_restores_lesson_count(client, db, login, make_user, failing_insert, caplog):
    from pymongo.errors import PyMongoError

    make_user("a@x.com", lessonCount=2)
    failing_insert("lesson", PyMongoError("write failed"))
    login("a@x.com")

    res = client.post("/lessons", json=lesson_body())

    assert res.status_code == 500
    assert res.json() == {"detail": "Database error"}
    assert db["user"].find_one({"email": "a@x.com"})["lessonCount"] == 2
    assert db["lesson"].count_documents({}) == 0
    assert "Database error on POST /lessons" in caplog.text


def test_reported_only_includes_private_lessons(client, db, login, make_user, make_lesson):
    make_user("boss@x.com", role="admin")
    reported = make_lesson(title="Private", privacy="private")
    db["report"].insert_one({"lessonId": reported, "totalReports": 1, "reportReasons": []})
    login("boss@x.com")

    res = client.get("/lessons", params={"reportedOnly": True})

    assert [l["title"] for l in res.json()["items"]] == ["Private"]
