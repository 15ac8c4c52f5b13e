# src/webinventory/constants.py
"""Centralized constants for the web inventory crawler.

This module contains defaults and magic numbers used across multiple modules.
For user-configurable settings, see config.py and CrawlConfig.
"""

# =============================================================================
# Scheduler Constants
# =============================================================================

# Default number of concurrently executing pipeline tasks
DEFAULT_CONCURRENCY_LIMIT = 3

# Default maximum attempts per task (first attempt included)
DEFAULT_MAX_ATTEMPTS = 3

# Fixed delay between attempts of the same task (milliseconds)
DEFAULT_RETRY_DELAY_MS = 2000

# Default pages to claim in recursive mode
DEFAULT_MAX_PAGES_TO_CRAWL = 50


# =============================================================================
# Browser Constants
# =============================================================================

# Navigation timeout (milliseconds)
DEFAULT_NAVIGATION_TIMEOUT_MS = 60000

# Observation window for network capture after a trigger click (milliseconds)
DEFAULT_CAPTURE_WINDOW_MS = 5000

# Playwright load state used when navigating
DEFAULT_WAIT_UNTIL = "networkidle"

# Maximum buttons exercised per page when button interaction is enabled
DEFAULT_MAX_INTERACTIONS = 10

# Desktop viewport dimensions
DESKTOP_VIEWPORT_WIDTH = 1920
DESKTOP_VIEWPORT_HEIGHT = 1080

# Resource types recorded as API traffic
API_RESOURCE_TYPES = ("xhr", "fetch")

# Elements captured by the element inventory
INVENTORY_SELECTORS = ("input", "button", "a", "select", "textarea")


# =============================================================================
# Login Constants
# =============================================================================

DEFAULT_USERNAME_SELECTOR = '[data-qa="login-inp-username"]'
DEFAULT_PASSWORD_SELECTOR = '[data-qa="login-inp-password"]'
DEFAULT_SUBMIT_SELECTOR = '[data-qa="submit-auth"]'
DEFAULT_LOGGED_IN_MARKER = '[data-qa="nav-menu-logout"]'

# Time allowed for the post-login marker to appear (milliseconds)
LOGIN_CONFIRMATION_TIMEOUT_MS = 10000


# =============================================================================
# Output Constants
# =============================================================================

DEFAULT_OUTPUT_DIR = "./output"
DEFAULT_URLS_FILE = "./urls.txt"

# Maximum characters kept from an error message
MAX_ERROR_MESSAGE_LENGTH = 500

# Maximum length of a filesystem slug derived from a URL
MAX_SLUG_LENGTH = 120

# Number of rows shown in report tables
REPORT_TOP_N = 15
