"""Tests for comment payload validation and spam heuristics."""

from typing import Any

import pytest

from foamsanat.comments.validation import (
    EXCESSIVE_LINKS_MESSAGE,
    SPAM_LENGTH_MESSAGE,
    SPAM_MESSAGE,
    detect_spam,
    validate_comment_payload,
)


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "productId": "mattress-01",
        "rating": 4,
        "author": "Jane",
        "email": "jane@example.com",
        "text": "Very comfortable mattress, slept great.",
    }
    payload.update(overrides)
    return payload


class TestValidateCommentPayload:
    """Tests for validate_comment_payload."""

    def test_valid_payload_is_sanitized(self) -> None:
        result = validate_comment_payload(
            _payload(
                productId="  mattress-01 ",
                author="  Jane  ",
                email=" JANE@Example.com ",
                turnstileToken="  tok  ",
            )
        )

        assert result.valid
        assert result.sanitized is not None
        assert result.sanitized.product_id == "mattress-01"
        assert result.sanitized.author == "Jane"
        assert result.sanitized.email == "jane@example.com"
        assert result.sanitized.turnstile_token == "tok"

    def test_blank_turnstile_token_becomes_none(self) -> None:
        result = validate_comment_payload(_payload(turnstileToken="   "))
        assert result.sanitized is not None
        assert result.sanitized.turnstile_token is None

    @pytest.mark.parametrize("payload", [None, [], "text", 42])
    def test_non_object_payload(self, payload: Any) -> None:
        result = validate_comment_payload(payload)
        assert result.error == "Invalid JSON payload."
        assert result.sanitized is None

    @pytest.mark.parametrize("product_id", [None, "", "   ", 12, "p" * 101])
    def test_invalid_product_id(self, product_id: Any) -> None:
        result = validate_comment_payload(_payload(productId=product_id))
        assert result.error == "Invalid product identifier."

    @pytest.mark.parametrize("rating", [0, 6, 4.5, "5", True, None])
    def test_invalid_rating(self, rating: Any) -> None:
        result = validate_comment_payload(_payload(rating=rating))
        assert result.error == "Rating must be an integer between 1 and 5."

    @pytest.mark.parametrize("rating", [1, 5])
    def test_rating_bounds_accepted(self, rating: int) -> None:
        assert validate_comment_payload(_payload(rating=rating)).valid

    def test_author_too_short(self) -> None:
        result = validate_comment_payload(_payload(author=" J "))
        assert result.error == "Author name must be at least 2 characters."

    def test_author_too_long(self) -> None:
        result = validate_comment_payload(_payload(author="a" * 121))
        assert result.error == "Author name must be at most 120 characters."

    @pytest.mark.parametrize(
        "email", [None, "jane", "jane@example", "ja ne@example.com", "a@b."]
    )
    def test_invalid_email(self, email: Any) -> None:
        result = validate_comment_payload(_payload(email=email))
        assert result.error == "A valid email address is required."

    def test_text_too_short_after_trim(self) -> None:
        result = validate_comment_payload(_payload(text="   too short   "))
        assert result.error == "Comment text must be at least 20 characters."

    def test_text_too_long(self) -> None:
        result = validate_comment_payload(_payload(text="a" * 2001))
        assert result.error == "Comment text must be at most 2000 characters."

    def test_text_exact_bounds_accepted(self) -> None:
        assert validate_comment_payload(_payload(text="x" * 20)).valid
        assert validate_comment_payload(_payload(text="y" * 2000)).valid

    def test_first_failing_field_wins(self) -> None:
        result = validate_comment_payload(_payload(rating=9, author="J"))
        assert result.error == "Rating must be an integer between 1 and 5."

    @pytest.mark.parametrize(
        ("field", "value", "label"),
        [
            ("author", "Jane\u202eDoe", "Author name"),
            ("text", "Great mattress \u2066hidden\u2069 text here", "Comment text"),
        ],
    )
    def test_bidi_control_characters_rejected(
        self, field: str, value: str, label: str
    ) -> None:
        result = validate_comment_payload(_payload(**{field: value}))
        assert result.error == f"{label} contains invalid characters."

    def test_more_than_two_links_rejected(self) -> None:
        text = "see http://a.example https://b.example and http://c.example"
        result = validate_comment_payload(_payload(text=text))
        assert result.error == EXCESSIVE_LINKS_MESSAGE


class TestDetectSpam:
    """Tests for detect_spam."""

    def test_clean_text(self) -> None:
        assert detect_spam("Very comfortable mattress, slept great.") is None

    def test_two_links_allowed(self) -> None:
        assert detect_spam("see http://a.example and https://b.example ok") is None

    def test_three_links(self) -> None:
        text = "http://a.example http://b.example http://c.example"
        assert detect_spam(text) == EXCESSIVE_LINKS_MESSAGE

    def test_word_repeated_five_times(self) -> None:
        assert detect_spam("buy buy buy buy buy now") == SPAM_MESSAGE

    def test_repetition_is_case_insensitive(self) -> None:
        assert detect_spam("Great GREAT great gReAt great product") == SPAM_MESSAGE

    def test_word_repeated_four_times_allowed(self) -> None:
        assert detect_spam("good good good good mattress overall") is None

    def test_overlong_text(self) -> None:
        assert detect_spam(" ".join(f"w{i}" for i in range(1000))) == SPAM_LENGTH_MESSAGE
