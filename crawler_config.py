"""
Configuration settings for the listing crawler.
"""

# Site origin - relative listing URLs are joined against this
BASE_URL = "https://www.trulia.com"

# Start URL templates per listing type ({location} is already URL-quoted)
START_URL_TEMPLATES = {
    "buy": BASE_URL + "/{location}/",
    "rent": BASE_URL + "/for_rent/{location}/",
}

# Default run input
DEFAULT_LOCATION = "NY"
DEFAULT_LISTING_TYPE = "buy"
DEFAULT_RESULTS_WANTED = 20
DEFAULT_MAX_PAGES = 5

# Number of pages fetched concurrently
# Keep this low - the site runs PerimeterX bot protection
MAX_CONCURRENCY = 2

# Retries per page URL (network errors and blocks both count)
MAX_RETRIES = 5

# Random delay before each request, in seconds (min, max)
NAVIGATION_DELAY = (0.5, 1.5)

# Random "browsing" delay after a page is handled, before pagination
BROWSE_DELAY = (0.5, 1.0)

# Request timeout in seconds
REQUEST_TIMEOUT = 60

# Browser fingerprints used by curl_cffi, rotated on every new session
IMPERSONATE_TARGETS = ["chrome120", "chrome119", "chrome116", "edge101"]

# A session is replaced after this many requests
SESSION_MAX_USAGE = 5

# Navigation headers sent with every request
# (curl_cffi adds the user agent and client hints of the impersonated browser)
DEFAULT_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,"
              "image/avif,image/webp,image/apng,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9",
    "cache-control": "max-age=0",
    "sec-fetch-dest": "document",
    "sec-fetch-mode": "navigate",
    "sec-fetch-site": "none",
    "sec-fetch-user": "?1",
    "upgrade-insecure-requests": "1",
}

# HTTP status codes treated as a block rather than a plain failure
BLOCK_STATUS_CODES = {403, 429}

# Page title fragments that mean we were served a block page
BLOCK_TITLE_MARKERS = ["Access Denied", "Captcha", "Robot"]

# Element ids of bot-protection challenge widgets
BLOCK_ELEMENT_IDS = ["px-captcha", "captcha-container"]

# Browser headless mode for --browser fetching
HEADLESS = True
