"""Text metrics for poem bodies.

Pure functions used by the stores and the editor views: word and line counts,
preview extraction, stanza splitting, syllable estimation and a content hash
for review staleness checks. None of them raise; empty input yields 0, an
empty list or an empty string.
"""

import re
import struct

_VOWEL = re.compile(r"[aeiouy]")
_VOWEL_RUN = re.compile(r"[aeiouy]+")
_NON_LETTERS = re.compile(r"[^a-z]")
# Trailing single e after anything but l or another e ("make", "time")
_SILENT_E = re.compile(r"[^le]e$")
# Consonant + le ending ("table", "bottle")
_CONSONANT_LE = re.compile(r"[^aeiouy]le$")
# -ed that does not add a syllable ("walked" but not "wanted")
_SILENT_ED = re.compile(r"[^td]ed$")

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def count_words(text: str) -> int:
    """Count whitespace-separated tokens. Blank input counts as 0."""
    if not text or not text.strip():
        return 0
    return len(text.split())


def count_lines(text: str) -> int:
    """Count lines holding at least one non-whitespace character.

    Blank lines separate stanzas and are not counted.
    """
    if not text or not text.strip():
        return 0
    return sum(1 for line in text.split("\n") if line.strip())


def generate_preview(body: str, max_lines: int = 2) -> str:
    """Join the first ``max_lines`` non-blank lines of a poem with newlines."""
    if not body or max_lines <= 0:
        return ""
    lines = [line for line in body.split("\n") if line.strip()]
    return "\n".join(lines[:max_lines])


def split_stanzas(body: str) -> list[list[str]]:
    """Group consecutive non-blank lines into stanzas.

    One or more blank lines separate stanzas. Leading and trailing blank lines
    never produce an empty stanza.
    """
    stanzas: list[list[str]] = []
    current: list[str] = []

    for line in (body or "").split("\n"):
        if line.strip():
            current.append(line)
        elif current:
            stanzas.append(current)
            current = []

    if current:
        stanzas.append(current)

    return stanzas


def count_syllables_in_word(word: str) -> int:
    """Estimate syllables in a word by counting vowel clusters.

    A fixed heuristic, not phonetic syllabification:

    - non-letters are stripped and the word lowercased; empty gives 0
    - words of one or two letters give 1 if they hold a vowel, else 0
    - otherwise count runs of a/e/i/o/u/y (no run at all counts as 1)
    - a trailing silent e, or a consonant + "le" ending, removes one
    - an "-ed" ending not after t or d removes one more
    - every subtraction is floored at 1
    """
    cleaned = _NON_LETTERS.sub("", (word or "").lower())
    if not cleaned:
        return 0
    if len(cleaned) <= 2:
        return 1 if _VOWEL.search(cleaned) else 0

    runs = _VOWEL_RUN.findall(cleaned)
    if not runs:
        return 1

    count = len(runs)
    if _SILENT_E.search(cleaned) or _CONSONANT_LE.search(cleaned):
        count = max(1, count - 1)
    if _SILENT_ED.search(cleaned):
        count = max(1, count - 1)

    return max(1, count)


def count_syllables_in_line(line: str) -> int:
    """Sum of word syllable estimates for one line. Blank lines give 0."""
    if not line:
        return 0
    return sum(count_syllables_in_word(token) for token in line.split())


def count_syllables_per_line(body: str) -> list[int]:
    """Syllable estimate for every physical line, blank lines included as 0."""
    return [count_syllables_in_line(line) for line in (body or "").split("\n")]


def truncate(text: str, max_length: int) -> str:
    """Cut text to ``max_length`` characters, appending "..." when shortened."""
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


def _utf16_code_units(text: str) -> tuple[int, ...]:
    data = text.encode("utf-16-le", "surrogatepass")
    return struct.unpack(f"<{len(data) // 2}H", data)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return sign + "".join(reversed(digits))


def hash_poem_body(body: str) -> str:
    """djb2 hash of the body rendered in base 36.

    Runs over UTF-16 code units with signed 32-bit wraparound, so hashes match
    the ones stored by the mobile client. Change detection only: collisions
    are possible and the value carries no security meaning.
    """
    value = 5381
    for unit in _utf16_code_units(body or ""):
        value = ((value << 5) + value + unit) & 0xFFFFFFFF

    if value >= 0x80000000:
        value -= 0x100000000

    return _to_base36(value)
