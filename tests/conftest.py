import pytest

from coretet.api import create_app
from coretet.config import ServerConfig
from coretet.crypto import TokenCipher
from coretet.database import DatabaseManager
from coretet.errors import Unauthorized, UpstreamError
from coretet.models import Identity, Playlist, PlaylistShare, ShareStatus, Track
from coretet.object_store import SignedUpload


class FakeObjectStore:
    bucket_name = "audio-files"

    def __init__(self):
        self.fail = False
        self.fail_paths = set()
        self.reachable = True
        self.objects = []
        self.signed = []
        self.uploads = []

    def create_signed_url(self, path, ttl_seconds=3600):
        if self.fail or path in self.fail_paths:
            raise UpstreamError("Failed to generate URL", details="store offline")
        self.signed.append(path)
        return f"https://storage.test/{path}?ttl={ttl_seconds}"

    def create_signed_upload_url(self, path):
        if self.fail:
            raise UpstreamError("Failed to create upload URL", details="store offline")
        self.uploads.append(path)
        return SignedUpload(url=f"https://storage.test/upload/{path}", path=path, token="sig")

    def bucket_exists(self):
        return self.reachable

    def list_objects(self, prefix=None):
        if self.fail:
            raise UpstreamError("Failed to list files", details="store offline")
        return [o for o in self.objects if not prefix or o["key"].startswith(prefix)]


class FakeAuth:
    def __init__(self):
        self.users = {}

    def add(self, token, user_id, email=None):
        self.users[token] = Identity(id=user_id, email=email)
        return self.users[token]

    def get_user(self, token):
        if token not in self.users:
            raise Unauthorized()
        return self.users[token]


class FakeMailer:
    def __init__(self):
        self.fail = False
        self.sent = []

    def send(self, sender, to, subject, html, text=None):
        if self.fail:
            raise UpstreamError("Failed to send email", details="relay down")
        self.sent.append({"sender": sender, "to": to, "subject": subject, "html": html, "text": text})
        return "msg-1"


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / "coretet.db"))


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def auth():
    return FakeAuth()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def config(tmp_path):
    return ServerConfig(
        supabase_url="https://auth.test",
        supabase_anon_key="anon",
        database_path=str(tmp_path / "coretet.db"),
        app_url="https://app.test",
        secret="test-secret",
    )


@pytest.fixture
def cipher():
    return TokenCipher("test-secret")


@pytest.fixture
def app(config, db, store, auth, mailer, cipher):
    return create_app(config, database=db, object_store=store, auth=auth, mailer=mailer, cipher=cipher)


@pytest.fixture
def client(app):
    return app.test_client()


def make_track(db, user_id, file_name="song.mp3", file_size=1000):
    track_id = Track.generate_id()
    return db.insert_track(Track(
        id=track_id,
        user_id=user_id,
        name=file_name.rsplit(".", 1)[0],
        file_name=file_name,
        file_size=file_size,
        storage_path=Track.build_storage_path(user_id, track_id, file_name),
    ))


def make_playlist(db, user_id, tracks=(), name="Rehearsal"):
    playlist = db.insert_playlist(Playlist(id=Playlist.generate_id(), user_id=user_id, name=name))
    for track in tracks:
        db.append_playlist_track(playlist.id, track.id)
    return playlist


def make_share(db, playlist, email, status=ShareStatus.ACCEPTED):
    return db.insert_share(PlaylistShare(
        id=PlaylistShare.generate_id(),
        playlist_id=playlist.id,
        shared_by=playlist.user_id,
        shared_with_email=email,
        status=status.value,
    ))
