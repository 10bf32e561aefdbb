"""Tests for footage uploads to R2"""

import pytest

from shootdesk.models import PostIdea, UploadedFile
from shootdesk.routes import upload as upload_routes


class FakeR2:
    def __init__(self, fail=False):
        self.objects = {}
        self.fail = fail

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.fail:
            raise RuntimeError("R2 unavailable")
        self.objects[Key] = (Body, ContentType)

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://r2.example.com/{Params['Key']}?expires={ExpiresIn}"


@pytest.fixture
def r2(monkeypatch):
    fake = FakeR2()
    monkeypatch.setattr(upload_routes, "get_r2_client", lambda: fake)
    return fake


class TestUpload:
    def test_upload_stores_object_and_marks_post_uploaded(self, client, db, auth_headers, r2, make_shoot, make_post):
        shoot = make_shoot()
        post = make_post()

        response = client.post(
            "/uploads",
            files={"file": ("latte.mp4", b"fake-video-bytes", "video/mp4")},
            data={"shootId": str(shoot.id), "postIdeaId": str(post.id), "notes": "take 3"},
            headers=auth_headers,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["postStatus"] == "uploaded"
        key = body["file"]["key"]
        assert key.startswith(f"clients/acme-coffee/shoots/{shoot.id}/")
        assert key.endswith("-latte.mp4")
        assert r2.objects[key] == (b"fake-video-bytes", "video/mp4")
        assert body["file"]["url"].startswith("https://r2.example.com/")
        assert body["file"]["notes"] == "take 3"

        db.expire_all()
        assert db.query(PostIdea).filter(PostIdea.id == post.id).first().status == "uploaded"

    @pytest.mark.parametrize(
        "data,detail",
        [
            ({"postIdeaId": "1"}, "shootId is required"),
            ({"shootId": "1"}, "postIdeaId is required for file uploads"),
        ],
    )
    def test_requires_ids(self, client, auth_headers, r2, user, data, detail):
        response = client.post(
            "/uploads", files={"file": ("a.jpg", b"x", "image/jpeg")}, data=data, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_requires_file(self, client, auth_headers, r2, user):
        response = client.post("/uploads", data={"shootId": "1", "postIdeaId": "1"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "No file provided"

    def test_unknown_shoot(self, client, auth_headers, r2, make_post):
        post = make_post()

        response = client.post(
            "/uploads",
            files={"file": ("a.jpg", b"x", "image/jpeg")},
            data={"shootId": "999", "postIdeaId": str(post.id)},
            headers=auth_headers,
        )

        assert response.status_code == 404

    def test_empty_file(self, client, auth_headers, r2, make_shoot, make_post):
        shoot = make_shoot()
        post = make_post()

        response = client.post(
            "/uploads",
            files={"file": ("a.jpg", b"", "image/jpeg")},
            data={"shootId": str(shoot.id), "postIdeaId": str(post.id)},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "File is empty"

    def test_storage_failure_is_500(self, client, db, auth_headers, monkeypatch, make_shoot, make_post):
        monkeypatch.setattr(upload_routes, "get_r2_client", lambda: FakeR2(fail=True))
        shoot = make_shoot()
        post = make_post()

        response = client.post(
            "/uploads",
            files={"file": ("a.jpg", b"x", "image/jpeg")},
            data={"shootId": str(shoot.id), "postIdeaId": str(post.id)},
            headers=auth_headers,
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Upload failed"
        assert db.query(UploadedFile).count() == 0


class TestListUploads:
    def test_lists_with_presigned_urls(self, client, db, auth_headers, r2, make_shoot, make_post):
        shoot = make_shoot()
        post = make_post()
        db.add(UploadedFile(post_idea_id=post.id, shoot_id=shoot.id, file_name="a.jpg", file_path="k/a.jpg", file_size=1))
        db.commit()

        body = client.get("/uploads", params={"shootId": shoot.id}, headers=auth_headers).json()

        assert body["totalCount"] == 1
        assert body["files"][0]["url"] == "https://r2.example.com/k/a.jpg?expires=3600"

    def test_requires_a_filter(self, client, auth_headers, r2, user):
        assert client.get("/uploads", headers=auth_headers).status_code == 400
