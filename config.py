import os

DEFAULT_PROVIDER = os.environ.get("KILN_PROVIDER", "Google")
DEFAULT_MODEL = os.environ.get("KILN_MODEL", "gemini-2.5-flash")
EXECUTION_MODEL = os.environ.get("KILN_EXECUTION_MODEL", "gemini-2.5-flash")

# Environment variables holding the API key for each provider.
PROVIDER_API_KEY_ENV = {
    "Google": "GEMINI_API_KEY",
    "AvalAI": "AVALAI_API_KEY",
    "GapGPT": "GAPGPT_API_KEY",
    "TalkBot": "TALKBOT_API_KEY",
}

# Base endpoints for the REST providers. Google goes through the SDK.
PROVIDER_BASE_URLS = {
    "AvalAI": os.environ.get("KILN_AVALAI_BASE_URL", "https://api.avalai.ir/v1beta"),
    "GapGPT": os.environ.get("KILN_GAPGPT_BASE_URL", "https://api.gapgpt.app/v1"),
    "TalkBot": os.environ.get("KILN_TALKBOT_BASE_URL", "https://api.talkbot.ir/v1"),
}

# (connect, read) timeouts in seconds for streaming HTTP calls.
REQUEST_TIMEOUT = (10, 300)

SAFETY_SETTINGS = {
    "HARM_CATEGORY_HARASSMENT": "BLOCK_NONE",
    "HARM_CATEGORY_HATE_SPEECH": "BLOCK_NONE",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT": "BLOCK_NONE",
    "HARM_CATEGORY_DANGEROUS_CONTENT": "BLOCK_NONE",
}

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
SANDBOX_DIR = os.path.join(BASE_DIR, ".sandbox")
PROJECT_STORE_PATH = os.path.join(SANDBOX_DIR, "projects.json")
AUDIT_LOG_PATH = os.path.join(SANDBOX_DIR, "audit_trail.csv")
SYSTEM_PROMPT_PATH = os.path.join(BASE_DIR, "public_data", "system_prompt.txt")
API_KEY_FILE_PATH = os.path.join(BASE_DIR, "private_data", "Gemini_API_Key.txt")

MAX_SAVED_PROJECTS = 10
TRACE_LOG_LIMIT = 500

DEBUG_MODE = os.environ.get("KILN_DEBUG", "").lower() in ("1", "true", "yes")

# Server configuration
SERVER_PORT = int(os.environ.get("KILN_PORT", "5001"))
