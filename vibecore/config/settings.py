"""Application-wide configuration loaded from environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()

# Redis
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

# ── Signal Collection ────────────────────────────────────────────────────

# Per-collector deadline; a collector that doesn't resolve in time is unavailable
COLLECTOR_TIMEOUT_SECONDS: float = float(os.getenv("COLLECTOR_TIMEOUT_SECONDS", "1.5"))

# Venue readings further away than this carry zero quality
VENUE_MAX_DISTANCE_M: float = float(os.getenv("VENUE_MAX_DISTANCE_M", "250"))

# GPS accuracy (meters) at which movement quality reaches zero
MOVEMENT_MAX_ACCURACY_M: float = float(os.getenv("MOVEMENT_MAX_ACCURACY_M", "100"))

# ── Vibe Engine ──────────────────────────────────────────────────────────

VIBE_WEIGHT_CAP: float = float(os.getenv("VIBE_WEIGHT_CAP", "1.0"))
VIBE_HISTORY_SIZE: int = int(os.getenv("VIBE_HISTORY_SIZE", "120"))
VIBE_MAX_CONFIDENCE: float = float(os.getenv("VIBE_MAX_CONFIDENCE", "0.95"))

# ── Adaptive Scheduler (milliseconds) ────────────────────────────────────

INTERVAL_IDLE_MS: int = 300_000
INTERVAL_HIGH_ENERGY_MS: int = 30_000
INTERVAL_WALKING_MS: int = 60_000
INTERVAL_VEHICLE_MS: int = 120_000
INTERVAL_DEFAULT_MS: int = 60_000

IDLE_SPEED_MPS: float = 0.3
IDLE_SCREEN_RATIO: float = 0.1
VEHICLE_SPEED_MPS: float = 3.0

# ── Predictability Gate ──────────────────────────────────────────────────

PREDICTABILITY_OMEGA_STAR: float = float(os.getenv("PREDICTABILITY_OMEGA_STAR", "0.35"))
PREDICTABILITY_TAU: float = float(os.getenv("PREDICTABILITY_TAU", "0.15"))
# Distance from a threshold that counts as a comfortable / fragile decision
PREDICTABILITY_HIGH_MARGIN: float = float(os.getenv("PREDICTABILITY_HIGH_MARGIN", "0.15"))
PREDICTABILITY_LOW_MARGIN: float = float(os.getenv("PREDICTABILITY_LOW_MARGIN", "0.05"))

# ── Rank-Time Privacy Gate ───────────────────────────────────────────────

# envelope -> (freshness window seconds, cohort floor, epsilon ceiling)
ENVELOPE_POLICIES: dict[str, tuple[int, int, float]] = {
    "strict": (
        int(os.getenv("STRICT_FRESHNESS_SECONDS", "60")),
        int(os.getenv("STRICT_COHORT_FLOOR", "20")),
        float(os.getenv("STRICT_EPSILON_CEILING", "1.0")),
    ),
    "balanced": (
        int(os.getenv("BALANCED_FRESHNESS_SECONDS", "300")),
        int(os.getenv("BALANCED_COHORT_FLOOR", "8")),
        float(os.getenv("BALANCED_EPSILON_CEILING", "3.0")),
    ),
    "permissive": (
        int(os.getenv("PERMISSIVE_FRESHNESS_SECONDS", "1800")),
        int(os.getenv("PERMISSIVE_COHORT_FLOOR", "3")),
        float(os.getenv("PERMISSIVE_EPSILON_CEILING", "10.0")),
    ),
}

# Epsilon budgets roll over at the end of each window
EPSILON_WINDOW_SECONDS: int = int(os.getenv("EPSILON_WINDOW_SECONDS", "86400"))

RECEIPT_STREAM: str = os.getenv("RECEIPT_STREAM", "gate:receipts")
RECEIPT_STREAM_MAXLEN: int = int(os.getenv("RECEIPT_STREAM_MAXLEN", "10000"))

# ── Preference Queue ─────────────────────────────────────────────────────

PREFERENCE_QUEUE_KEY: str = os.getenv("PREFERENCE_QUEUE_KEY", "prefs:queue")
PREFERENCE_QUEUE_CAP: int = int(os.getenv("PREFERENCE_QUEUE_CAP", "500"))
PREFERENCE_BATCH_SIZE: int = int(os.getenv("PREFERENCE_BATCH_SIZE", "50"))

# ── Presence Publisher ───────────────────────────────────────────────────

PRESENCE_URL: str = os.getenv("PRESENCE_URL", "http://localhost:54321/rest/v1/rpc/upsert_presence")
PRESENCE_API_KEY: str = os.getenv("PRESENCE_API_KEY", "")
PRESENCE_TIMEOUT_SECONDS: float = float(os.getenv("PRESENCE_TIMEOUT_SECONDS", "5"))
PRESENCE_MAX_ATTEMPTS: int = int(os.getenv("PRESENCE_MAX_ATTEMPTS", "3"))
PRESENCE_BACKOFF_SECONDS: float = float(os.getenv("PRESENCE_BACKOFF_SECONDS", "2"))
# Upper bound on a server-supplied Retry-After hint
PRESENCE_MAX_RETRY_AFTER_SECONDS: int = int(os.getenv("PRESENCE_MAX_RETRY_AFTER_SECONDS", "300"))

# Grid used when presence is published at category fidelity (~1 km)
PRESENCE_CATEGORY_GRID_DEG: float = float(os.getenv("PRESENCE_CATEGORY_GRID_DEG", "0.01"))

# ── Agent Configuration ──────────────────────────────────────────────────

VIBE_MONITOR_SEED: str = os.getenv("VIBE_MONITOR_SEED", "vibecore-vibe-monitor-seed-v1")
GROUP_COORDINATOR_SEED: str = os.getenv(
    "GROUP_COORDINATOR_SEED", "vibecore-group-coordinator-seed-v1"
)

VIBE_MONITOR_PORT: int = int(os.getenv("VIBE_MONITOR_PORT", "8001"))
GROUP_COORDINATOR_PORT: int = int(os.getenv("GROUP_COORDINATOR_PORT", "8002"))

# Default envelope used by agents when a request doesn't name one
DEFAULT_ENVELOPE: str = os.getenv("DEFAULT_ENVELOPE", "balanced")

# ── Agent Deployment ─────────────────────────────────────────────────────

# Set to "agentverse" to deploy on Agentverse (uses mailbox, no local endpoint).
# Set to "local" (default) for local dev with localhost endpoints.
AGENT_DEPLOY_MODE: str = os.getenv("AGENT_DEPLOY_MODE", "local")
AGENT_ENDPOINT_BASE: str = os.getenv("AGENT_ENDPOINT_BASE", "http://localhost")

# ── Server Configuration ─────────────────────────────────────────────────

SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
