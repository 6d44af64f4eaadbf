# Purpose: decide what kind of item a clipboard string is (URL, code or plain text)
# pure functions, no I/O; images never reach this module

from urllib.parse import urlsplit

from cliptrail.db.models import CodeContent, Item, TextContent, URLContent

URL_SCHEMES = {"http", "https"}

CODE_INDICATORS = (
    "function", "class", "def ", "import ", "export ", "var ", "let ", "const ",
    "if ", "for ", "while ", "switch ", "case ", "return ", "public ", "private ",
    "{", "}", "(", ")", ";", "=>", "->", "::", "//", "/*", "*/",
)

# a one-line payload needs this many indicator hits to count as code
SINGLE_LINE_MIN_INDICATORS = 2


def is_url(text: str) -> bool:
    """http(s) URL with a host and no whitespace inside"""
    candidate = text.strip()
    if not candidate or any(c.isspace() for c in candidate):
        return False

    try:
        parts = urlsplit(candidate)
    except ValueError:
        return False

    return parts.scheme.lower() in URL_SCHEMES and bool(parts.netloc)


def count_indicators(line: str) -> int:
    trimmed = line.strip()
    return sum(trimmed.count(indicator) for indicator in CODE_INDICATORS)


def is_code_line(line: str) -> bool:
    trimmed = line.strip()
    return any(indicator in trimmed for indicator in CODE_INDICATORS)


def is_code(text: str) -> bool:
    """
    Code when strictly more than half of the lines look like code
    One-liners need at least two indicator hits, so a lone ";" stays text
    """
    lines = text.splitlines() or [text]

    if len(lines) == 1:
        return count_indicators(lines[0]) >= SINGLE_LINE_MIN_INDICATORS

    code_lines = sum(1 for line in lines if is_code_line(line))
    return code_lines * 2 > len(lines)


def classify(text: str) -> Item:
    """
    Map a non-empty clipboard string to a candidate item
    URL is checked first, then code, text otherwise
    """
    if not text or not text.strip():
        raise ValueError("Empty clipboard payloads are rejected before classification")

    if is_url(text):
        return Item(payload=URLContent(url=text.strip()))

    if is_code(text):
        return Item(payload=CodeContent(code=text))

    return Item(payload=TextContent(content=text))
