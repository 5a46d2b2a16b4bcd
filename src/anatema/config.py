import os

from dotenv import load_dotenv

# Load from .env if it exists (useful for local development)
load_dotenv()

LOGGING_LEVEL = os.getenv("LOGGING_LEVEL", "INFO").upper() or "INFO"

# --- AI provider ---
AI_PROVIDER = os.getenv("AI_PROVIDER", "openrouter").lower()
AI_MODEL = os.getenv("AI_MODEL", "meta-llama/llama-3.1-8b-instruct:free")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
AI_ENABLED = os.getenv("AI_ENABLED", "false").lower() == "true"
AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "60"))

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"
APP_TITLE = "Thematic Analysis Tool"
APP_REFERER = os.getenv("APP_REFERER", "http://localhost:5173")

COMPLETION_TEMPERATURE = 0.7
COMPLETION_MAX_TOKENS = 1000

# --- REST API ---
API_BASE_URL = os.getenv("API_BASE_URL", "")
API_ENVIRONMENT = os.getenv("API_ENVIRONMENT", "development").lower()
API_TIMEOUT_S = float(os.getenv("API_TIMEOUT_S", "15"))
API_RETRY_ATTEMPTS = int(os.getenv("API_RETRY_ATTEMPTS", "3"))
HEALTH_ENDPOINT = "/api/health"
HEALTH_TIMEOUT_S = 5.0

# Backoff for the request layer: min(BASE * 2^(n-1), MAX)
API_BACKOFF_BASE_S = 1.0
API_BACKOFF_MAX_S = 10.0
OFFLINE_MAX_REPLAYS = 3

# --- Local storage ---
STORAGE_DIR = os.getenv("ANATEMA_STORAGE_DIR", os.path.join(os.getcwd(), ".anatema"))
STORAGE_QUOTA_BYTES = int(os.getenv("ANATEMA_STORAGE_QUOTA_BYTES", "0"))  # 0 = unlimited

OFFLINE_QUEUE_KEY = "offline-api-queue"
CUSTOM_PROMPTS_KEY = "ai-system-prompts"
AI_SETTINGS_KEY = "ai-settings"

TEMPORARY_KEY_MARKERS = (
    "temp_",
    "cache_",
    "_temp",
    "ai_suggestion_cache",
    "upload_progress_",
    "download_",
    "preview_",
)
