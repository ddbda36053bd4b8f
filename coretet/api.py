"""
HTTP API for CoreTet.

Exposes the signed-URL issuers, upload intake, invites, feedback, sharing
and playlist ordering as JSON endpoints, plus the storage provider
registry for each signed-in user.
"""

import logging
from typing import Any, Dict, Optional

from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from . import __version__
from .access import TrackUrlIssuer
from .auth import SupabaseAuthClient, bearer_token
from .config import APP_NAME, ServerConfig
from .constants import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS
from .crypto import TokenCipher
from .database import DatabaseManager
from .errors import CoreTetError, NotFound, ValidationError
from .feedback import FeedbackService
from .intake import UploadIntake
from .invites import InviteService
from .mailer import ResendMailer
from .models import Identity, ProviderName
from .object_store import ObjectStore
from .playlists import PlaylistService
from .sharing import SharingService
from .storage import RegistryCache, StorageBackendFactory, StorageRegistry

logger = logging.getLogger(__name__)


def _services() -> Dict[str, Any]:
    return current_app.extensions["coretet"]


def _identity() -> Identity:
    """Resolve the caller from the Authorization header, once per request."""
    if "identity" not in g:
        token = bearer_token(request.headers.get("Authorization"))
        g.identity = _services()["auth"].get_user(token)
    return g.identity


def _json_body(optional: bool = False) -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None and optional:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _registry(identity: Identity) -> StorageRegistry:
    return _services()["registries"].get(identity.id)


def _provider(registry: StorageRegistry, name: str) -> ProviderName:
    try:
        return registry.resolve(name)
    except ValueError:
        raise NotFound(f"Unknown storage provider: {name}")


def create_app(config: Optional[ServerConfig] = None, database=None, object_store=None,
               auth=None, mailer=None, cipher=None) -> Flask:
    """
    Build the Flask application.

    Any collaborator left as None is built from `config`, so tests can
    swap in fakes for the database, object store, auth and mailer.
    """
    config = config or ServerConfig.from_env()
    database = database or DatabaseManager(config.database_path)
    object_store = object_store or ObjectStore.from_config(config)
    auth = auth or SupabaseAuthClient(config.supabase_url, config.supabase_anon_key,
                                      timeout=config.network_timeout)
    if mailer is None and config.resend_api_key:
        mailer = ResendMailer(config.resend_api_key, timeout=config.network_timeout)
    cipher = cipher or TokenCipher(config.secret)
    backends = StorageBackendFactory(config, database, object_store, cipher)

    app = Flask(__name__)
    CORS(
        app,
        origins="*",
        send_wildcard=True,
        allow_headers=CORS_ALLOW_HEADERS,
        methods=CORS_ALLOW_METHODS,
    )

    app.extensions["coretet"] = {
        "config": config,
        "db": database,
        "auth": auth,
        "issuer": TrackUrlIssuer(database, object_store),
        "intake": UploadIntake(database, object_store,
                               default_storage_limit=config.default_storage_limit),
        "invites": InviteService(database, app_url=config.app_url),
        "feedback": FeedbackService(database, mailer=mailer, recipient=config.feedback_recipient),
        "sharing": SharingService(database, mailer=mailer, app_url=config.app_url),
        "playlists": PlaylistService(database),
        "backends": backends,
        "registries": RegistryCache(backends.create_registry, max_size=config.registry_cache_size),
    }

    @app.errorhandler(CoreTetError)
    def handle_coretet_error(e: CoreTetError):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e)
        else:
            logger.info("%s %s -> %s: %s", request.method, request.path, e.status_code, e)
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    @app.route('/api/health')
    def health_check():
        return jsonify({"status": "healthy", "service": APP_NAME, "version": __version__})

    # --- Signed URLs ---

    @app.route('/functions/v1/get-track-url', methods=['POST'])
    def get_track_url():
        identity = _identity()
        data = _json_body()
        track_id = data.get("trackId")
        if not isinstance(track_id, str) or not track_id:
            raise ValidationError("Track ID is required", field="trackId")
        url = _services()["issuer"].issue(identity, track_id)
        return jsonify({"url": url})

    @app.route('/functions/v1/get-track-urls', methods=['POST'])
    def get_track_urls():
        identity = _identity()
        data = _json_body()
        track_ids = data.get("trackIds")
        if not isinstance(track_ids, list) or not track_ids \
                or not all(isinstance(t, str) and t for t in track_ids):
            raise ValidationError("Track IDs array is required", field="trackIds")
        result = _services()["issuer"].issue_many(identity, track_ids)
        return jsonify(result.to_dict())

    # --- Upload intake ---

    @app.route('/functions/v1/upload-track', methods=['POST'])
    def upload_track():
        identity = _identity()
        data = _json_body()
        result = _services()["intake"].begin_upload(
            identity, data.get("fileName"), data.get("fileSize"), data.get("category")
        )
        return jsonify(result)

    # --- Invites & feedback ---

    @app.route('/functions/v1/generate-invite', methods=['POST'])
    def generate_invite():
        identity = _identity()
        data = _json_body(optional=True)
        result = _services()["invites"].generate(
            identity,
            email=data.get("email"),
            expires_in_days=data.get("expiresInDays"),
            origin=request.headers.get("Origin"),
        )
        return jsonify(result)

    @app.route('/functions/v1/send-feedback', methods=['POST'])
    def send_feedback():
        identity = _identity()
        data = _json_body()
        result = _services()["feedback"].submit(
            identity, data.get("topic"), data.get("comment"), data.get("attachments")
        )
        return jsonify(result)

    # --- Sharing ---

    @app.route('/functions/v1/share-playlist', methods=['POST'])
    def share_playlist():
        identity = _identity()
        data = _json_body()
        result = _services()["sharing"].share(identity, data.get("playlistId"), data.get("emails"))
        return jsonify(result)

    @app.route('/functions/v1/accept-shares', methods=['POST'])
    def accept_shares():
        identity = _identity()
        accepted = _services()["sharing"].accept_pending(identity)
        return jsonify({"accepted": accepted})

    @app.route('/functions/v1/revoke-share', methods=['POST'])
    def revoke_share():
        identity = _identity()
        data = _json_body()
        share_id = data.get("shareId")
        if not isinstance(share_id, str) or not share_id:
            raise ValidationError("Share ID is required", field="shareId")
        share = _services()["sharing"].revoke(identity, share_id)
        return jsonify({"share": share.to_dict()})

    # --- Playlists ---

    @app.route('/api/playlists', methods=['POST'])
    def create_playlist():
        identity = _identity()
        data = _json_body()
        playlist = _services()["playlists"].create(identity, data.get("name"), data.get("description"))
        return jsonify({"playlist": playlist.to_dict()}), 201

    @app.route('/api/playlists/<playlist_id>/tracks', methods=['GET'])
    def get_playlist_tracks(playlist_id):
        identity = _identity()
        tracks = _services()["playlists"].tracks(identity, playlist_id)
        return jsonify({"tracks": tracks})

    @app.route('/api/playlists/<playlist_id>/tracks', methods=['POST'])
    def add_playlist_track(playlist_id):
        identity = _identity()
        data = _json_body()
        playlist = _services()["playlists"].add_track(identity, playlist_id, data.get("trackId"))
        return jsonify({"playlist": playlist.to_dict()})

    @app.route('/api/playlists/<playlist_id>/tracks', methods=['PATCH'])
    def reorder_playlist_tracks(playlist_id):
        identity = _identity()
        data = _json_body()
        playlist = _services()["playlists"].reorder(identity, playlist_id, data.get("trackIds"))
        return jsonify({"playlist": playlist.to_dict()})

    # --- Storage providers ---

    @app.route('/api/storage/providers', methods=['GET'])
    def list_providers():
        registry = _registry(_identity())
        active = registry.active_provider
        return jsonify({
            "providers": registry.snapshot(),
            "active": active.value if active else None,
        })

    @app.route('/api/storage/providers/<name>/connect', methods=['POST'])
    def connect_provider(name):
        registry = _registry(_identity())
        data = _json_body(optional=True)
        state = registry.connect(_provider(registry, name), data or None)
        return jsonify({"provider": state.to_dict(active=registry.active_provider == state.name)})

    @app.route('/api/storage/providers/<name>/disconnect', methods=['POST'])
    def disconnect_provider(name):
        registry = _registry(_identity())
        state = registry.disconnect(_provider(registry, name))
        return jsonify({"provider": state.to_dict(active=False)})

    @app.route('/api/storage/providers/<name>/activate', methods=['POST'])
    def activate_provider(name):
        registry = _registry(_identity())
        switched = registry.switch_active(_provider(registry, name))
        active = registry.active_provider
        return jsonify({"switched": switched, "active": active.value if active else None})

    @app.route('/api/storage/providers/<name>/files', methods=['GET'])
    def list_provider_files(name):
        registry = _registry(_identity())
        files = registry.list_files(_provider(registry, name), request.args.get("path"))
        return jsonify({"files": files})

    return app
