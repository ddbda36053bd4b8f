import pytest

from coretet.invites import ADMIN_ROLE
from coretet.models import ShareStatus

from conftest import make_playlist, make_share, make_track

MB = 1024 * 1024


@pytest.fixture
def owner(auth):
    return auth.add("owner-token", "owner-1", "owner@example.com")


@pytest.fixture
def collab(auth):
    return auth.add("collab-token", "collab-1", "collab@example.com")


def headers(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["status"] == "healthy"


def test_preflight_needs_no_auth(client):
    r = client.options(
        "/functions/v1/get-track-url",
        headers={
            "Origin": "https://app.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type",
        },
    )
    assert r.status_code == 200
    assert r.headers["Access-Control-Allow-Origin"] == "*"
    assert "POST" in r.headers["Access-Control-Allow-Methods"]
    assert "authorization" in r.headers["Access-Control-Allow-Headers"].lower()


@pytest.mark.parametrize("auth_header", [None, "Bearer nope", "Bearer "])
def test_missing_or_bad_token_is_401(client, auth_header):
    kwargs = {"json": {"trackId": "t"}}
    if auth_header:
        kwargs["headers"] = {"Authorization": auth_header}
    r = client.post("/functions/v1/get-track-url", **kwargs)
    assert r.status_code == 401
    assert r.get_json() == {"error": "Unauthorized"}


def test_owner_gets_track_url(client, db, owner):
    track = make_track(db, owner.id)
    r = client.post("/functions/v1/get-track-url", json={"trackId": track.id},
                    headers=headers("owner-token"))
    assert r.status_code == 200
    assert track.storage_path in r.get_json()["url"]


def test_track_url_errors(client, db, owner, collab, store):
    track = make_track(db, owner.id)

    r = client.post("/functions/v1/get-track-url", json={}, headers=headers("owner-token"))
    assert r.status_code == 400

    r = client.post("/functions/v1/get-track-url", json={"trackId": "ghost"}, headers=headers("owner-token"))
    assert r.status_code == 404
    assert r.get_json() == {"error": "Track not found"}

    r = client.post("/functions/v1/get-track-url", json={"trackId": track.id}, headers=headers("collab-token"))
    assert r.status_code == 403
    assert r.get_json() == {"error": "Access denied"}

    store.fail = True
    r = client.post("/functions/v1/get-track-url", json={"trackId": track.id}, headers=headers("owner-token"))
    assert r.status_code == 500
    assert r.get_json() == {"error": "Failed to generate URL"}


def test_non_object_body_is_400(client, owner):
    r = client.post("/functions/v1/get-track-url", data="[1, 2]",
                    content_type="application/json", headers=headers("owner-token"))
    assert r.status_code == 400


def test_collaborator_flow(client, db, owner, collab):
    track = make_track(db, owner.id)
    playlist = make_playlist(db, owner.id, [track])

    r = client.post("/functions/v1/share-playlist",
                    json={"playlistId": playlist.id, "emails": ["Collab@Example.com"]},
                    headers=headers("owner-token"))
    assert r.status_code == 200
    assert r.get_json()["results"] == [{"email": "collab@example.com", "status": "invited"}]

    r = client.post("/functions/v1/get-track-url", json={"trackId": track.id}, headers=headers("collab-token"))
    assert r.status_code == 403

    r = client.post("/functions/v1/accept-shares", headers=headers("collab-token"))
    assert r.get_json() == {"accepted": 1}

    r = client.post("/functions/v1/get-track-url", json={"trackId": track.id}, headers=headers("collab-token"))
    assert r.status_code == 200

    r = client.get(f"/api/playlists/{playlist.id}/tracks", headers=headers("collab-token"))
    assert [t["id"] for t in r.get_json()["tracks"]] == [track.id]


def test_batch_urls(client, db, owner, collab):
    shared = make_track(db, owner.id, "shared.mp3")
    private = make_track(db, owner.id, "private.mp3")
    make_share(db, make_playlist(db, owner.id, [shared]), collab.email, status=ShareStatus.ACCEPTED)

    r = client.post("/functions/v1/get-track-urls",
                    json={"trackIds": [shared.id, private.id, "ghost"]},
                    headers=headers("collab-token"))
    assert r.status_code == 200
    body = r.get_json()
    assert set(body["urls"]) == {shared.id}
    assert body["errors"] == {private.id: "Access denied", "ghost": "Track not found"}


@pytest.mark.parametrize("track_ids", [None, [], "abc", [1, 2]])
def test_batch_requires_id_list(client, owner, track_ids):
    r = client.post("/functions/v1/get-track-urls", json={"trackIds": track_ids},
                    headers=headers("owner-token"))
    assert r.status_code == 400


def test_upload_intake(client, db, owner):
    db.upsert_profile(owner.id, storage_limit=10 * MB)

    r = client.post("/functions/v1/upload-track",
                    json={"fileName": "Riff.flac", "fileSize": 4 * MB, "category": "ideas"},
                    headers=headers("owner-token"))
    assert r.status_code == 200
    body = r.get_json()
    assert body["track"]["category"] == "ideas"
    assert body["path"].startswith(f"{owner.id}/")
    assert body["uploadUrl"] and body["token"]

    r = client.post("/functions/v1/upload-track",
                    json={"fileName": "notes.txt", "fileSize": 10}, headers=headers("owner-token"))
    assert r.status_code == 400

    r = client.post("/functions/v1/upload-track",
                    json={"fileName": "huge.wav", "fileSize": 100 * MB + 1}, headers=headers("owner-token"))
    assert r.status_code == 413

    r = client.post("/functions/v1/upload-track",
                    json={"fileName": "big.wav", "fileSize": 7 * MB}, headers=headers("owner-token"))
    assert r.status_code == 413
    assert r.get_json() == {"error": "Storage limit exceeded"}


def test_generate_invite(client, db, owner):
    r = client.post("/functions/v1/generate-invite", json={}, headers=headers("owner-token"))
    assert r.status_code == 403

    db.set_user_role(owner.id, ADMIN_ROLE)
    r = client.post("/functions/v1/generate-invite", json={"email": "new@example.com", "expiresInDays": 2},
                    headers={**headers("owner-token"), "Origin": "https://beta.test"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["inviteUrl"] == f"https://beta.test?invite={body['invite']['code']}"


def test_send_feedback(client, owner, mailer):
    r = client.post("/functions/v1/send-feedback", json={"topic": "Bug", "comment": "Crash"},
                    headers=headers("owner-token"))
    assert r.status_code == 200
    assert r.get_json()["message"] == "Feedback sent successfully"
    assert len(mailer.sent) == 1

    r = client.post("/functions/v1/send-feedback", json={"topic": "Bug"}, headers=headers("owner-token"))
    assert r.status_code == 400


def test_playlist_routes(client, db, owner, collab):
    a = make_track(db, owner.id, "a.mp3")
    b = make_track(db, owner.id, "b.mp3")

    r = client.post("/api/playlists", json={"name": "Gig"}, headers=headers("owner-token"))
    assert r.status_code == 201
    playlist_id = r.get_json()["playlist"]["id"]

    for track in (a, b):
        r = client.post(f"/api/playlists/{playlist_id}/tracks", json={"trackId": track.id},
                        headers=headers("owner-token"))
        assert r.status_code == 200

    r = client.patch(f"/api/playlists/{playlist_id}/tracks", json={"trackIds": [b.id, a.id]},
                     headers=headers("owner-token"))
    assert r.get_json()["playlist"]["track_ids"] == [b.id, a.id]

    r = client.patch(f"/api/playlists/{playlist_id}/tracks", json={"trackIds": [b.id]},
                     headers=headers("owner-token"))
    assert r.status_code == 400

    r = client.get(f"/api/playlists/{playlist_id}/tracks", headers=headers("collab-token"))
    assert r.status_code == 403


def test_storage_provider_routes(client, owner):
    r = client.get("/api/storage/providers", headers=headers("owner-token"))
    assert r.status_code == 200
    assert r.get_json()["active"] is None
    assert {p["name"] for p in r.get_json()["providers"]} == {"google_drive", "dropbox", "onedrive", "coretet"}

    r = client.post("/api/storage/providers/coretet/connect", headers=headers("owner-token"))
    assert r.get_json()["provider"]["status"] == "connected"
    assert r.get_json()["provider"]["active"] is True

    r = client.post("/api/storage/providers/dropbox/connect", headers=headers("owner-token"))
    assert r.get_json()["provider"]["status"] == "error"

    r = client.post("/api/storage/providers/dropbox/activate", headers=headers("owner-token"))
    assert r.get_json() == {"switched": False, "active": "coretet"}

    r = client.post("/api/storage/providers/icloud/connect", headers=headers("owner-token"))
    assert r.status_code == 404


def test_provider_errors_are_not_reported_as_unknown(app, client, owner, monkeypatch):
    registry = app.extensions["coretet"]["registries"].get(owner.id)

    def broken(name, path=None):
        raise ValueError("bad page token")

    monkeypatch.setattr(registry, "list_files", broken)
    r = client.get("/api/storage/providers/coretet/files", headers=headers("owner-token"))
    assert r.status_code == 500
    assert r.get_json() == {"error": "Internal server error"}

    r = client.get("/api/storage/providers/icloud/files", headers=headers("owner-token"))
    assert r.status_code == 404
