"""Centralized model configuration, pricing, and engine defaults."""

# Model IDs for different tiers
MODELS = {
    "planner": "claude-sonnet-4-20250514",
    "planner_heavy": "claude-opus-4-20250115",
    "planner_light": "claude-haiku-4-5-20251001",
}

# Pricing per million tokens (USD)
PRICING = {
    "claude-haiku-4-5-20251001": {"input": 0.80, "output": 4.00},
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-opus-4-20250115": {"input": 15.00, "output": 75.00},
}

# Default budget per session
DEFAULT_BUDGET_USD = 2.00

# Default viewport
DEFAULT_VIEWPORT = (1280, 900)

# Reconciliation loop
DEFAULT_PASS_BUDGET = 2
DEFAULT_FOLD_FROM_PASS = 2

# Timings (milliseconds)
DEFAULT_SETTLE_MS = 2000  # after each pass, before re-distilling
DEFAULT_POST_CLICK_MS = 1000  # after a click action, for DOM mutation
DEFAULT_PACING_MS = 500  # after every action
DEFAULT_DROPDOWN_OPEN_MS = 800  # after opening a smart_select control
DEFAULT_OPTION_WAIT_MS = 2000  # waiting for the resolved option list to be visible
DEFAULT_QUIESCENCE_TIMEOUT_MS = 10_000

# Dropdown selection acceptance floor (strictly greater than)
DEFAULT_MATCH_THRESHOLD = 0.4

# Oracle value meaning "leave this field for manual completion"
HUMAN_CHECK = "human_check"

# Closed set of action types the executor understands
ACTION_TYPES = ("fill", "smart_select", "file_upload", "radio", "checkbox", "click")

# Planning modes
MODE_INITIAL = "initial"
MODE_SPOTLIGHT = "spotlight"
