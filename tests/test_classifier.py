from __future__ import annotations

import pytest

from cliptrail.db.models import ItemKind
from cliptrail.ingest.classifier import classify, is_code, is_url


def kind(text: str) -> ItemKind:
    return classify(text).kind


def test_majority_of_code_lines_is_code():
    assert kind("import foo\nlet x = 1\nplain english sentence") == ItemKind.CODE


def test_minority_of_code_lines_is_text():
    assert kind("plain one\nplain two\nimport foo") == ItemKind.TEXT


def test_exactly_half_is_not_code():
    assert kind("x = foo();\njust words") == ItemKind.TEXT


def test_url_wins_over_code_tokens():
    assert kind("https://example.com") == ItemKind.URL
    assert kind("https://example.com/search?q=(a);b") == ItemKind.URL


def test_url_keeps_stripped_value():
    item = classify("  https://example.com/page \n")
    assert item.kind == ItemKind.URL
    assert item.payload.url == "https://example.com/page"


@pytest.mark.parametrize("text", ["ftp://example.com", "mailto:me@example.com", "example.com", "https://"])
def test_only_http_urls_with_host(text):
    assert not is_url(text)


def test_url_with_spaces_is_text():
    assert kind("https://example.com is a site") == ItemKind.TEXT


def test_single_lone_token_is_text():
    assert kind(";") == ItemKind.TEXT
    assert kind("(") == ItemKind.TEXT
    assert kind("this function is slow") == ItemKind.TEXT


def test_single_line_with_two_tokens_is_code():
    assert kind("print(x)") == ItemKind.CODE
    assert kind("const add = (a, b) => a + b;") == ItemKind.CODE


def test_indented_block_is_code():
    snippet = "def add(a, b):\n    return a + b\n"
    assert is_code(snippet)
    assert kind(snippet) == ItemKind.CODE


def test_code_language_is_not_detected():
    assert classify("print(x)").payload.language is None


def test_plain_text():
    item = classify("Meeting moved to Thursday\nBring the slides")
    assert item.kind == ItemKind.TEXT
    assert item.payload.content == "Meeting moved to Thursday\nBring the slides"


def test_classification_is_deterministic():
    samples = ["https://example.com", "print(x)", "hello there", "a\nb;\nc;"]
    for text in samples:
        assert [classify(text).kind for _ in range(5)] == [classify(text).kind] * 5


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_empty_payload_rejected(text):
    with pytest.raises(ValueError):
        classify(text)


def test_candidate_has_no_identity_yet():
    item = classify("hello")
    assert item.id is None
    assert item.timestamp is None
