"""Shared defaults for the difylink integration."""

API_VERSION_SUFFIX = "/v1"
DEFAULT_BASE_URL = "https://api.dify.ai/v1"
CREDENTIALS_NAME = "difyApi"

# seconds
DEFAULT_CHAT_TIMEOUT = 30.0
DEFAULT_WORKFLOW_TIMEOUT = 60.0
DEFAULT_FILE_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 2.0

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_JITTER = 1.0

DEFAULT_PAGE_LIMIT = 100
DEFAULT_MAX_WORKFLOW_FILES = 5

MB = 1024 * 1024
DEFAULT_MAX_FILE_SIZE = 10 * MB

SUPPORTED_FILE_TYPES = {
    "image": ["png", "jpg", "jpeg", "gif", "webp", "bmp", "svg"],
    "document": ["pdf", "doc", "docx", "txt", "md", "rtf", "odt", "html"],
    "audio": ["mp3", "mp4", "mpeg", "m4a", "wav", "webm", "aac", "flac"],
    "video": ["mp4", "mov", "avi", "webm", "mkv", "flv", "wmv"],
}

# megabytes
MAX_FILE_SIZE_BY_TYPE = {
    "image": 10,
    "document": 50,
    "audio": 100,
    "video": 200,
    "auto": 15,
}

KNOWLEDGE_DOCUMENT_MIME_TYPES = [
    "text/plain",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]
KNOWLEDGE_DOCUMENT_MAX_SIZE = 15 * MB

STREAM_DONE_SENTINEL = "[DONE]"
