import functools, logging, regex
from typing import Iterable, Optional, Tuple
from .models import Dialect

log = logging.getLogger("rules")

def normalize_host(value) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()

@functools.lru_cache(maxsize=1024)
def compile_glob(pattern: str):
    # "*" is any run, "?" one character, everything else literal
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(regex.escape(ch))
    return regex.compile("".join(parts), regex.DOTALL)

@functools.lru_cache(maxsize=1024)
def compile_regex(pattern: str):
    return regex.compile(pattern)

def is_valid_regex(pattern: str) -> bool:
    try:
        compile_regex(pattern)
    except regex.error as e:
        log.warning("Invalid regex pattern %r: %s", pattern, e)
        return False
    return True

def matches(pattern: str, dialect, candidate: str) -> bool:
    # regex rules search (unanchored); globs must cover the whole candidate
    dialect = Dialect.coerce(dialect)
    if dialect is Dialect.EXACT:
        return candidate == pattern.lower()
    if dialect is Dialect.GLOB:
        return compile_glob(pattern.lower()).fullmatch(candidate) is not None
    try:
        return compile_regex(pattern).search(candidate) is not None
    except regex.error as e:
        log.warning("Skipping stored regex %r: %s", pattern, e)
        return False

def first_match(rules: Iterable[Tuple[str, str]], candidate: str) -> Optional[Tuple[str, str]]:
    candidate = normalize_host(candidate)
    if not candidate:
        return None
    for pattern, dialect in rules:
        if matches(pattern, dialect, candidate):
            return pattern, dialect
    return None
