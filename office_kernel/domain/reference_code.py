"""
Reference codes -- pure derivation and formatting of human-facing identifiers.

Responsibility:
    Derives the three-letter base candidate for a counterparty reference
    code, validates caller-supplied short codes, produces the bounded
    candidate walk used on collision, and formats numeric series values
    (``JOB-0001``, ``INV-0001``, ``ABC12``).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The storage probe
    and the counter increment live in services/sequence_service.py.

Invariants enforced:
    - A short code is exactly SHORT_CODE_LENGTH uppercase ASCII letters.
    - The candidate walk yields exactly SHORT_CODE_MAX_ATTEMPTS distinct
      codes, the base first, and then stops.
    - Derivation is a total function: any input yields a valid code.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterator, Mapping

from office_kernel.exceptions import InvalidFormatError

SHORT_CODE_LENGTH = 3
SHORT_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SHORT_CODE_MAX_ATTEMPTS = len(SHORT_CODE_ALPHABET)
SHORT_CODE_FILLER = "X"
SHORT_CODE_SENTINEL = "CLX"

# Series key under which counterparty short codes are allocated.
REFERENCE_CODE_SERIES = "reference_code"

# Separator between a series and its caller-chosen prefix: "invoice:ABC".
SERIES_PREFIX_SEPARATOR = ":"

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "of", "for",
        "ltd", "limited", "llc", "inc", "incorporated", "plc", "co", "company",
    }
)

_SHORT_CODE_RE = re.compile(rf"[A-Z]{{{SHORT_CODE_LENGTH}}}")
_NON_LETTERS = re.compile(r"[^A-Za-z]")


def _fold_to_ascii(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return decomposed.encode("ascii", "ignore").decode("ascii")


def _significant_words(name: str) -> list[str]:
    words = [_NON_LETTERS.sub("", w) for w in _fold_to_ascii(name).split()]
    words = [w for w in words if w]
    significant = [w for w in words if w.lower() not in STOP_WORDS]
    # A name made only of stop words ("The Company") still yields its letters
    return significant or words


def derive_base_candidate(
    primary_name: str | None,
    secondary_name: str | None = None,
) -> str:
    """
    Derive the base short code from a display name.

    The secondary name (a company name) wins when it is non-blank.

    Rules, after dropping stop words and non-letters:
        - three or more words: initials of the first three words
        - two words: first letter of word one + first two letters of word two
        - one word: its first three letters
    The result is uppercased and right-padded with SHORT_CODE_FILLER.
    Nothing usable yields SHORT_CODE_SENTINEL.

    >>> derive_base_candidate("John Smith")
    'JSM'
    """
    source = secondary_name if secondary_name and secondary_name.strip() else primary_name
    words = _significant_words(source or "")

    if not words:
        return SHORT_CODE_SENTINEL
    if len(words) >= 3:
        code = "".join(w[0] for w in words[:3])
    elif len(words) == 2:
        code = words[0][0] + words[1][:2]
    else:
        code = words[0][:SHORT_CODE_LENGTH]

    return code.upper().ljust(SHORT_CODE_LENGTH, SHORT_CODE_FILLER)


def validate_short_code(value: object) -> str:
    """
    Validate a caller-supplied short code.

    Raises:
        InvalidFormatError: unless ``value`` is exactly three uppercase
            letters A-Z.  No normalisation is applied: ``"abc"`` is rejected.
    """
    if not isinstance(value, str) or not _SHORT_CODE_RE.fullmatch(value):
        raise InvalidFormatError(
            str(value), f"exactly {SHORT_CODE_LENGTH} uppercase letters A-Z"
        )
    return value


def candidate_walk(base: str) -> Iterator[str]:
    """
    Yield the collision-resolution candidates for ``base``.

    The base comes first; then its final letter is replaced by each
    following letter of the alphabet, wrapping from Z to A, until every
    letter has been tried once.  ``"JSM"`` yields JSM, JSN, ..., JSZ,
    JSA, ..., JSL.
    """
    validate_short_code(base)
    stem, last = base[:-1], base[-1]
    start = SHORT_CODE_ALPHABET.index(last)
    for offset in range(SHORT_CODE_MAX_ATTEMPTS):
        yield stem + SHORT_CODE_ALPHABET[(start + offset) % len(SHORT_CODE_ALPHABET)]


# ---------------------------------------------------------------------------
# Numeric series formatting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeriesFormat:
    """How an issued counter value is rendered: prefix + zero-padded number."""

    prefix: str
    width: int = 0

    def render(self, value: int) -> str:
        return f"{self.prefix}{value:0{self.width}d}" if self.width else f"{self.prefix}{value}"


DEFAULT_SERIES_FORMATS: Mapping[str, SeriesFormat] = {
    "job": SeriesFormat("JOB-", 4),
    "invoice": SeriesFormat("INV-", 4),
    "timesheet": SeriesFormat("TS-", 4),
}


def split_series_key(series_key: str) -> tuple[str, str | None]:
    """``"invoice:ABC"`` -> ``("invoice", "ABC")``; ``"job"`` -> ``("job", None)``."""
    base, sep, prefix = series_key.partition(SERIES_PREFIX_SEPARATOR)
    return base, (prefix if sep and prefix else None)


def prefixed_series_key(series: str, prefix: str) -> str:
    return f"{series}{SERIES_PREFIX_SEPARATOR}{prefix}"


def format_series_value(
    series_key: str,
    value: int,
    formats: Mapping[str, SeriesFormat] = DEFAULT_SERIES_FORMATS,
) -> str:
    """
    Render an issued value for a series.

    A prefixed series renders as the prefix followed by the unpadded
    number (``"invoice:ABC"``, 12 -> ``"ABC12"``).  A configured series
    uses its SeriesFormat.  Anything else renders the bare number.
    """
    base, prefix = split_series_key(series_key)
    if prefix is not None:
        return SeriesFormat(prefix).render(value)
    fmt = formats.get(base)
    if fmt is None:
        return str(value)
    return fmt.render(value)
