"""
Shared constants used across the service.
"""

# Object storage
DEFAULT_STORAGE_BUCKET = "audio-files"
SIGNED_URL_TTL = 3600  # seconds

# Upload intake
ALLOWED_UPLOAD_EXTENSIONS = [".mp3", ".m4a", ".wav", ".flac"]
MAX_UPLOAD_SIZE = 100 * 1024 * 1024  # 100MB
DEFAULT_STORAGE_LIMIT = 1024 * 1024 * 1024  # 1GB per user unless a profile says otherwise

# Invites
INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
INVITE_CODE_MAX_ATTEMPTS = 10
DEFAULT_INVITE_EXPIRY_DAYS = 7

# Batch URL issuance error reasons
ERROR_ACCESS_DENIED = "Access denied"
ERROR_TRACK_NOT_FOUND = "Track not found"
ERROR_URL_FAILED = "Failed to generate URL"

# CORS
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
CORS_ALLOW_METHODS = ["GET", "POST", "PATCH", "OPTIONS"]

# Email relay
RESEND_API_URL = "https://api.resend.com/emails"
FEEDBACK_SENDER = "CoreTet <feedback@coretet.app>"
INVITE_SENDER = "CoreTet <noreply@coretet.app>"
DEFAULT_FEEDBACK_RECIPIENT = "coretetapp@gmail.com"

# Configuration paths
DEFAULT_DATA_DIR = "~/.local/share/coretet"
DEFAULT_DATABASE_PATH = DEFAULT_DATA_DIR + "/coretet.db"
DEFAULT_APP_URL = "http://localhost:5173"

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds

# Per-user storage registries kept in memory by the API
DEFAULT_REGISTRY_CACHE_SIZE = 256

# Google Drive
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_DRIVE_API = "https://www.googleapis.com/drive/v3"
GOOGLE_DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.readonly",
]
GOOGLE_AUDIO_MIME_TYPES = [
    "audio/mpeg", "audio/mp3", "audio/wav", "audio/mp4",
    "audio/aac", "audio/ogg", "audio/flac", "audio/m4a",
]
