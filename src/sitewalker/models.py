"""Centralized defaults for timeouts, retries, and capture."""

# Timeouts (milliseconds)
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_NETWORK_IDLE_TIMEOUT_MS = 30_000
DEFAULT_RACE_FALLBACK_MS = 5_000

# Retry / backoff
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1_000

# Browser
DEFAULT_VIEWPORT = (1280, 720)
DEFAULT_BROWSER = "chromium"
SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")

# Checkpoint capture
DEFAULT_SCREENSHOT_DIR = "screenshots"

# What an action does when none of its target descriptors is found
MISSING_ELEMENT_POLICIES = ("fail", "ignore")
DEFAULT_MISSING_ELEMENT_POLICY = "fail"
