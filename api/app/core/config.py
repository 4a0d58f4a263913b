import os

WW_DB_PATH: str = os.environ.get("WW_DB_PATH", "/data/sqlite/wellwell.db")

# External inference (OpenAI-compatible chat completions)
WW_INFERENCE_URL: str = os.environ.get("WW_INFERENCE_URL", "https://ai.gateway.lovable.dev/v1")
WW_INFERENCE_API_KEY: str = os.environ.get("WW_INFERENCE_API_KEY", "")
WW_INFERENCE_MODEL: str = os.environ.get("WW_INFERENCE_MODEL", "google/gemini-2.5-flash")
WW_INFERENCE_TIMEOUT: float = float(os.environ.get("WW_INFERENCE_TIMEOUT", "30"))

# Session result cache freshness window (seconds).
WW_RESULT_CACHE_TTL: float = float(os.environ.get("WW_RESULT_CACHE_TTL", "300"))

# Bucket width (seconds) for the submission timestamp in derived idempotency keys.
WW_IDEMPOTENCY_WINDOW: int = int(os.environ.get("WW_IDEMPOTENCY_WINDOW", "60"))

# Truncation length for the input echo in fallbacks and derived keys.
WW_INPUT_ECHO_CHARS: int = int(os.environ.get("WW_INPUT_ECHO_CHARS", "120"))

# Score ledger
WW_DEFAULT_VIRTUE_SCORE: int = int(os.environ.get("WW_DEFAULT_VIRTUE_SCORE", "50"))

# Idle orchestrator instances are evicted from the per-user pool after this many seconds.
WW_POOL_IDLE_TTL: float = float(os.environ.get("WW_POOL_IDLE_TTL", "1800"))
