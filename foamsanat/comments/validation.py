"""Comment payload validation and spam heuristics.

Provides:
- Field sanitation (trim, bounds, lowercase email, hidden-character check)
- Link-count and repeated-word spam heuristics
"""

import re
from collections import Counter
from typing import Any, NamedTuple

from pydantic import BaseModel


# ==============================================================================
# Constants for validation rules
# ==============================================================================

PRODUCT_ID_MAX_LENGTH = 100
AUTHOR_MIN_LENGTH = 2
AUTHOR_MAX_LENGTH = 120
EMAIL_MIN_LENGTH = 5
EMAIL_MAX_LENGTH = 254
TEXT_MIN_LENGTH = 20
TEXT_MAX_LENGTH = 2000
RATING_MIN = 1
RATING_MAX = 5

# Spam heuristics
MAX_LINKS = 2
SPAM_TEXT_MAX_LENGTH = 3000
REPEATED_WORD_THRESHOLD = 5

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
LINK_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
WORD_PATTERN = re.compile(r"\w+")

# Bidirectional overrides and invisible marks that can hide or reorder text
BIDI_CONTROL_CHARACTERS = frozenset(
    "\u202a\u202b\u202c\u202d\u202e\u2066\u2067\u2068\u2069\u200e\u200f\u061c"
)

INVALID_PRODUCT_MESSAGE = "Invalid product identifier."
INVALID_RATING_MESSAGE = "Rating must be an integer between 1 and 5."
INVALID_EMAIL_MESSAGE = "A valid email address is required."
EXCESSIVE_LINKS_MESSAGE = "Please remove excessive links from your comment."
SPAM_MESSAGE = "Comment appears to be spam. Please revise and try again."
SPAM_LENGTH_MESSAGE = "Comment exceeds the allowed length."


class SanitizedComment(BaseModel):
    """Validated submission, ready to persist."""

    product_id: str
    rating: int
    author: str
    email: str
    text: str
    turnstile_token: str | None = None


class ValidationResult(NamedTuple):
    """Result of a validation check. Exactly one field is set."""

    error: str | None = None
    sanitized: SanitizedComment | None = None

    @property
    def valid(self) -> bool:
        return self.error is None


def contains_hidden_characters(value: str) -> bool:
    return any(char in BIDI_CONTROL_CHARACTERS for char in value)


def count_links(text: str) -> int:
    return len(LINK_PATTERN.findall(text))


def _clean_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip()


def validate_comment_payload(payload: Any) -> ValidationResult:
    """Validate and sanitize a public comment submission.

    Args:
        payload: Decoded JSON body with camelCase keys.

    Returns:
        ValidationResult holding either the first error message or the
        sanitized comment.

    Examples:
        >>> validate_comment_payload({"productId": "m1"}).error
        'Rating must be an integer between 1 and 5.'
    """
    if not isinstance(payload, dict):
        return ValidationResult(error="Invalid JSON payload.")

    product_id = _clean_string(payload.get("productId"))
    if not product_id or len(product_id) > PRODUCT_ID_MAX_LENGTH:
        return ValidationResult(error=INVALID_PRODUCT_MESSAGE)

    rating = payload.get("rating")
    # bool is an int subclass; JSON true must not count as a rating
    if (
        isinstance(rating, bool)
        or not isinstance(rating, int)
        or not RATING_MIN <= rating <= RATING_MAX
    ):
        return ValidationResult(error=INVALID_RATING_MESSAGE)

    author = _clean_string(payload.get("author"))
    if author is None or len(author) < AUTHOR_MIN_LENGTH:
        return ValidationResult(error="Author name must be at least 2 characters.")
    if len(author) > AUTHOR_MAX_LENGTH:
        return ValidationResult(
            error=f"Author name must be at most {AUTHOR_MAX_LENGTH} characters."
        )

    email = _clean_string(payload.get("email"))
    if (
        email is None
        or not EMAIL_MIN_LENGTH <= len(email) <= EMAIL_MAX_LENGTH
        or not EMAIL_PATTERN.match(email)
    ):
        return ValidationResult(error=INVALID_EMAIL_MESSAGE)

    text = _clean_string(payload.get("text"))
    if text is None or len(text) < TEXT_MIN_LENGTH:
        return ValidationResult(
            error=f"Comment text must be at least {TEXT_MIN_LENGTH} characters."
        )
    if len(text) > TEXT_MAX_LENGTH:
        return ValidationResult(
            error=f"Comment text must be at most {TEXT_MAX_LENGTH} characters."
        )

    for label, value in (
        ("Product identifier", product_id),
        ("Author name", author),
        ("Email", email),
        ("Comment text", text),
    ):
        if contains_hidden_characters(value):
            return ValidationResult(error=f"{label} contains invalid characters.")

    if count_links(text) > MAX_LINKS:
        return ValidationResult(error=EXCESSIVE_LINKS_MESSAGE)

    token = _clean_string(payload.get("turnstileToken"))

    return ValidationResult(
        sanitized=SanitizedComment(
            product_id=product_id,
            rating=rating,
            author=author,
            email=email.lower(),
            text=text,
            turnstile_token=token or None,
        )
    )


def detect_spam(text: str) -> str | None:
    """Apply spam heuristics to a comment body.

    Checks:
    - Overall length (beyond the field limit)
    - Number of links
    - Any single word repeated five or more times

    Returns:
        The rejection message, or None when the text looks legitimate.
    """
    if len(text) > SPAM_TEXT_MAX_LENGTH:
        return SPAM_LENGTH_MESSAGE

    if count_links(text) > MAX_LINKS:
        return EXCESSIVE_LINKS_MESSAGE

    words = Counter(word.lower() for word in WORD_PATTERN.findall(text))
    if words and max(words.values()) >= REPEATED_WORD_THRESHOLD:
        return SPAM_MESSAGE

    return None
