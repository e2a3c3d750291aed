import io
import json
import os

import mongomock
import pytest
from bson import ObjectId
from fastapi import UploadFile
from pymongo.errors import PyMongoError
from starlette.datastructures import Headers

import posts
import users
from errors import Forbidden, NotFound, ValidationError
from schemas import DEFAULT_PROFILE_PICTURE


@pytest.fixture
def alice(make_user):
    return make_user("Alice Smith", headline="Data Engineer at Acme", skills=["python"])


def test_get_profile_includes_posts_without_password(db, alice):
    posts.create_post(db, alice, "my first post")

    user, user_posts = users.get_profile(db, str(alice["_id"]))

    assert user["id"] == str(alice["_id"])
    assert "password" not in user
    assert [p["content"] for p in user_posts] == ["my first post"]


def test_get_profile_missing(db):
    with pytest.raises(NotFound):
        users.get_profile(db, str(ObjectId()))
    with pytest.raises(NotFound):
        users.get_profile(db, "nope")


def test_update_is_partial(db, alice, reload):
    fields = users.UpdateUserBody(location="Berlin")
    updated = users.update_profile(db, str(alice["_id"]), alice, fields)

    assert updated["location"] == "Berlin"
    assert updated["name"] == "Alice Smith"
    assert updated["headline"] == "Data Engineer at Acme"
    assert reload(alice)["skills"] == ["python"]


def test_update_replaces_list_fields_wholesale(db, alice):
    fields = users.UpdateUserBody(
        skills=["go", "sql"],
        education=[{"school": "MIT", "degree": "BSc", "fieldOfStudy": "CS"}],
    )
    updated = users.update_profile(db, str(alice["_id"]), alice, fields)

    assert updated["skills"] == ["go", "sql"]
    assert updated["education"][0]["school"] == "MIT"


def test_update_other_profile_is_forbidden(db, alice, make_user, reload):
    mallory = make_user("Mallory Grey")
    with pytest.raises(Forbidden):
        users.update_profile(db, str(alice["_id"]), mallory, users.UpdateUserBody(name="Hacked"))
    assert reload(alice)["name"] == "Alice Smith"


def test_search_is_case_insensitive_over_name_email_headline(db, alice, make_user):
    make_user("Bob Jones", headline="Designer")

    assert [u["name"] for u in users.search_users(db, "ALICE")] == ["Alice Smith"]
    assert [u["name"] for u in users.search_users(db, "engineer")] == ["Alice Smith"]
    assert [u["name"] for u in users.search_users(db, "bob@example")] == ["Bob Jones"]
    assert users.search_users(db, "a.c") == []


def test_search_is_capped(db, make_user):
    for i in range(users.SEARCH_LIMIT + 3):
        make_user(f"Sam Number{i}", email=f"sam{i}@example.com")
    assert len(users.search_users(db, "sam")) == users.SEARCH_LIMIT


def test_search_requires_query(db):
    with pytest.raises(ValidationError):
        users.search_users(db, "  ")


# HTTP layer
def test_profile_update_over_http(client, alice, auth_headers):
    res = client.put(
        "/api/users/profile",
        data={
            "bio": "Builds pipelines",
            "jobInterests": json.dumps(["data", "ml"]),
            "onboardingComplete": "true",
        },
        headers=auth_headers(alice),
    )
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["bio"] == "Builds pipelines"
    assert data["jobInterests"] == ["data", "ml"]
    assert data["onboardingComplete"] is True
    assert data["skills"] == ["python"]


def test_profile_update_for_someone_else_is_forbidden(client, alice, make_user, auth_headers):
    bob = make_user("Bob Jones")
    res = client.put(f"/api/users/{alice['_id']}", data={"name": "Bobby"}, headers=auth_headers(bob))
    assert res.status_code == 403
    assert res.json()["success"] is False


def test_profile_update_rejects_malformed_lists(client, alice, auth_headers):
    res = client.put("/api/users/profile", data={"skills": "python, go"}, headers=auth_headers(alice))
    assert res.status_code == 400

    res = client.put(
        "/api/users/profile",
        data={"education": json.dumps([{"school": "MIT"}])},
        headers=auth_headers(alice),
    )
    assert res.status_code == 400


def test_profile_picture_replacement_deletes_previous_upload(client, alice, auth_headers, upload_dir):
    res = client.put(
        f"/api/users/{alice['_id']}",
        files={"profilePicture": ("me.png", b"png-1", "image/png")},
        headers=auth_headers(alice),
    )
    assert res.status_code == 200
    first = res.json()["data"]["profilePicture"]
    assert first != DEFAULT_PROFILE_PICTURE
    first_path = os.path.join(str(upload_dir), os.path.basename(first))
    assert os.path.exists(first_path)

    res = client.put(
        "/api/users/profile",
        files={"profilePicture": ("me2.png", b"png-2", "image/png")},
        headers=auth_headers(alice),
    )
    second = res.json()["data"]["profilePicture"]
    assert second != first
    assert not os.path.exists(first_path)


def test_banner_must_be_an_image(client, alice, auth_headers):
    res = client.put(
        "/api/users/profile",
        files={"bannerImage": ("clip.mp4", b"video", "video/mp4")},
        headers=auth_headers(alice),
    )
    assert res.status_code == 400


def test_rejected_banner_discards_picture_saved_in_same_request(client, alice, auth_headers, upload_dir, reload):
    res = client.put(
        "/api/users/profile",
        files={
            "profilePicture": ("me.png", b"png", "image/png"),
            "bannerImage": ("clip.mp4", b"video", "video/mp4"),
        },
        headers=auth_headers(alice),
    )
    assert res.status_code == 400
    assert os.listdir(str(upload_dir)) == []
    assert reload(alice)["profilePicture"] == DEFAULT_PROFILE_PICTURE


def test_failed_profile_write_discards_new_upload(db, alice, upload_dir, monkeypatch):
    def failing_update(self, *args, **kwargs):
        raise PyMongoError("down")

    monkeypatch.setattr(mongomock.Collection, "find_one_and_update", failing_update)
    picture = UploadFile(file=io.BytesIO(b"png"), filename="me.png", headers=Headers({"content-type": "image/png"}))

    with pytest.raises(PyMongoError):
        users.update_profile(db, str(alice["_id"]), alice, users.UpdateUserBody(), {"profilePicture": picture})
    assert os.listdir(str(upload_dir)) == []


def test_public_user_routes(client, alice):
    res = client.get("/api/users")
    assert res.status_code == 200
    assert res.json()["count"] == 1

    res = client.get("/api/users/search", params={"q": "alice"})
    assert res.json()["users"][0]["email"] == "alice@example.com"

    res = client.get("/api/users/search")
    assert res.status_code == 400

    res = client.get(f"/api/users/{alice['_id']}")
    body = res.json()
    assert body["user"]["name"] == "Alice Smith"
    assert body["posts"] == []

    res = client.get(f"/api/users/{ObjectId()}")
    assert res.status_code == 404
