import sqlite3

import pytest

from coretet.errors import QuotaExceeded, TooLarge, UnsupportedType, UpstreamError, ValidationError
from coretet.intake import UploadIntake, file_extension, is_allowed_audio_file
from coretet.models import Identity

USER = Identity(id="user-1", email="user@example.com")
MB = 1024 * 1024


@pytest.fixture
def intake(db, store):
    return UploadIntake(db, store, default_storage_limit=500 * MB)


def test_file_extension_is_case_insensitive():
    assert file_extension("Take 3.WAV") == ".wav"
    assert file_extension("noext") == ""
    assert file_extension(".mp3") == ".mp3"
    assert is_allowed_audio_file("a.b.flac")
    assert not is_allowed_audio_file("notes.txt")


def test_begin_upload_creates_track_and_url(db, intake):
    result = intake.begin_upload(USER, "Demo.m4a", 5 * MB, "demos")
    track = result["track"]
    assert track["user_id"] == USER.id
    assert track["name"] == "Demo"
    assert track["category"] == "demos"
    assert result["path"] == f"{USER.id}/{track['id']}/Demo.m4a"
    assert track["storage_path"] == result["path"]
    assert result["uploadUrl"].endswith(result["path"])
    assert db.get_track(track["id"]) is not None


def test_category_defaults_to_songs(intake):
    assert intake.begin_upload(USER, "a.mp3", 10)["track"]["category"] == "songs"


def test_unknown_category_rejected(intake):
    with pytest.raises(ValidationError):
        intake.begin_upload(USER, "a.mp3", 10, "podcasts")


def test_unsupported_extension(intake):
    with pytest.raises(UnsupportedType) as exc:
        intake.begin_upload(USER, "cover.png", 10)
    assert exc.value.status_code == 400


def test_size_limit_is_inclusive(intake):
    intake.begin_upload(USER, "max.wav", 100 * MB)
    with pytest.raises(TooLarge) as exc:
        intake.begin_upload(USER, "over.wav", 100 * MB + 1)
    assert exc.value.status_code == 413


@pytest.mark.parametrize("file_name,file_size", [
    (None, 10),
    ("", 10),
    ("a/b.mp3", 10),
    ("a.mp3", None),
    ("a.mp3", -1),
    ("a.mp3", "10"),
    ("a.mp3", True),
])
def test_missing_or_malformed_fields(intake, file_name, file_size):
    with pytest.raises(ValidationError):
        intake.begin_upload(USER, file_name, file_size)


def test_quota_uses_profile(db, intake):
    db.upsert_profile(USER.id, storage_limit=10 * MB)
    intake.begin_upload(USER, "first.mp3", 6 * MB)
    assert db.get_profile(USER.id).storage_used == 6 * MB

    intake.begin_upload(USER, "exact.mp3", 4 * MB)
    with pytest.raises(QuotaExceeded) as exc:
        intake.begin_upload(USER, "one-more.mp3", 1)
    assert exc.value.used == 10 * MB
    assert exc.value.limit == 10 * MB


def test_missing_profile_uses_default_limit(db, store):
    intake = UploadIntake(db, store, default_storage_limit=1000)
    intake.begin_upload(USER, "small.mp3", 1000)
    with pytest.raises(QuotaExceeded):
        intake.begin_upload(USER, "small.mp3", 1001)


def test_url_failure_leaves_no_track(db, store, intake):
    store.fail = True
    with pytest.raises(UpstreamError):
        intake.begin_upload(USER, "a.mp3", 10)
    with sqlite3.connect(db.db_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0] == 0


def test_missing_profile_counts_cumulative_usage(db, store):
    intake = UploadIntake(db, store, default_storage_limit=1000)
    intake.begin_upload(USER, "a.mp3", 600)
    assert db.get_profile(USER.id).storage_used == 600
    assert db.get_profile(USER.id).storage_limit == 1000

    with pytest.raises(QuotaExceeded) as exc:
        intake.begin_upload(USER, "b.mp3", 600)
    assert exc.value.used == 600


@pytest.mark.parametrize("file_name", ["Take.MP3", "Take.M4a", "Take.WAV", "Take.Flac"])
def test_allowed_extensions_any_case(db, store, intake, file_name):
    result = intake.begin_upload(USER, file_name, 10)
    assert result["path"].endswith(file_name)
    assert store.uploads == [result["path"]]
    assert db.get_track(result["track"]["id"]) is not None


def test_oversized_upload_leaves_nothing_behind(db, store, intake):
    with pytest.raises(TooLarge):
        intake.begin_upload(USER, "session.wav", 105_000_000)
    assert store.uploads == []
    with sqlite3.connect(db.db_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0] == 0
