"""Vinted session pool - self-replenishing session tokens for marketplace scraping.

A per-origin pool of short-lived access tokens, a disguised HTTP client
that rotates rejected tokens, and API consumers that retry on
invalid-token responses.
"""

__version__ = "0.1.0"
__author__ = "Session Pool Team"
