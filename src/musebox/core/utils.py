import math
import os
import re
import unicodedata


def lower_lay_string(s: str) -> str:
    """
    Normalize a string with NFKD and drop the combining marks (accents).
    """
    normalized = unicodedata.normalize('NFKD', s)
    return ''.join(c for c in normalized if not unicodedata.combining(c))


def collapse(s: str) -> str:
    """
    Collapse runs of whitespace into a single space and trim both ends.
    """
    return re.sub(r'\s+', ' ', s).strip()


def prepare_input(input_str: str) -> str:
    # accents out
    prepared_input = lower_lay_string(input_str)

    # punctuation -> space
    prepared_input = re.sub(r"[`~!@#$%^&*()_|+\-=?;:\",.<>{}\[\]\\\/]", " ", prepared_input)

    # apostrophes are dropped, not spaced
    prepared_input = re.sub(r"[’']", "", prepared_input)

    prepared_input = prepared_input.lower()

    return collapse(prepared_input)


def title_from_filename(filename: str) -> str:
    base = os.path.basename(filename or "")
    stem, _ext = os.path.splitext(base)
    return stem or base


def format_duration(seconds: float | None) -> str:
    """
    Format a duration in seconds as m:ss. Missing or invalid values render as 0:00.
    """
    if not seconds or (isinstance(seconds, float) and math.isnan(seconds)):
        return "0:00"
    s = max(0, int(seconds))
    m = s // 60
    s = s % 60
    return f"{m}:{s:02d}"
