"""Runtime configuration defaults for the health context engine."""

from dataclasses import dataclass
from pathlib import Path

PERSONAL_INFO_TOKENS = 200
PER_RESULT_TOKENS = 50
PANEL_HEADER_TOKENS = 50
CHARS_PER_TOKEN = 4
DEFAULT_ITEM_TOKENS = 500

# Size level thresholds for the estimated context payload.
SMALL_CONTEXT_TOKENS = 4000
LARGE_CONTEXT_TOKENS = 8000

MAX_WRITE_CONCURRENCY = 8
DEFAULT_SQLITE_PATH = Path("./data/health.sqlite3")
DEFAULT_ENABLED_CATEGORIES = ("personal_info", "lab_panel")


@dataclass(frozen=True)
class EngineConfig:
    """Per-item cost heuristics and write limits used by one engine instance.

    Category base costs are fixed in the category registry.
    """

    per_result_tokens: int = PER_RESULT_TOKENS
    panel_header_tokens: int = PANEL_HEADER_TOKENS
    chars_per_token: int = CHARS_PER_TOKEN
    default_item_tokens: int = DEFAULT_ITEM_TOKENS
    small_context_tokens: int = SMALL_CONTEXT_TOKENS
    large_context_tokens: int = LARGE_CONTEXT_TOKENS
    max_write_concurrency: int = MAX_WRITE_CONCURRENCY

    def __post_init__(self) -> None:
        if self.chars_per_token < 1:
            raise ValueError("chars_per_token must be positive.")
        if self.max_write_concurrency < 1:
            raise ValueError("max_write_concurrency must be positive.")
        if self.small_context_tokens > self.large_context_tokens:
            raise ValueError("small_context_tokens cannot exceed large_context_tokens.")
