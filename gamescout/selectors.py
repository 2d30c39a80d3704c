"""Centralised selectors for the rotrends listing pages."""

# ==== RENDERED DOM (after client-side scripts ran) ====
GAME_PATH_FRAGMENT = "/games/"
GAME_LINK = "a[href^='/games/'], a[href^='/game/']"

# ==== STATIC MARKUP (last-resort parse of page content) ====
STATIC_GAME_NODE = "[data-game-id], a[href*='/games/']"
STATIC_GAME_ANCHOR = "a[href*='/games/']"

# ==== NETWORK ====
# Substrings identifying XHR endpoints that may carry the games payload.
LISTING_ENDPOINT_HINTS = ("games", "search", "list", "api")
