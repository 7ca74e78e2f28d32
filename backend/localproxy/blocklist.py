import logging
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import select, delete, desc, literal_column
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from .models import BlockRule, Dialect
from .rules import normalize_host, is_valid_regex, first_match
from .schemas import RuleOut

log = logging.getLogger("blocklist")

# newest first; rowid breaks ties between rules created within the same clock tick
_NEWEST_FIRST = (desc(BlockRule.created_at), desc(literal_column("rowid")))

class RuleStore:
    """Block rules and the host matcher. Failures come back as False or empty, never raised."""

    def __init__(self, session_factory):
        self._sessions = session_factory

    def add_rule(self, pattern: str, dialect=Dialect.EXACT) -> bool:
        pattern = (pattern or "").strip()
        if not pattern:
            return False
        dialect = Dialect.coerce(dialect)
        if dialect is Dialect.REGEX:
            if not is_valid_regex(pattern):
                return False
        else:
            pattern = pattern.lower()

        stmt = sqlite_insert(BlockRule).values(
            pattern=pattern, dialect=dialect.value, created_at=datetime.now(timezone.utc)
        ).on_conflict_do_nothing(index_elements=[BlockRule.pattern])
        try:
            with self._sessions.begin() as db:
                db.execute(stmt)
        except SQLAlchemyError as e:
            log.error("DB error adding %r (%s): %s", pattern, dialect.value, e)
            return False
        return True

    def block_domain(self, pattern: str) -> bool:
        return self.add_rule(pattern, Dialect.EXACT)

    def block_glob(self, pattern: str) -> bool:
        return self.add_rule(pattern, Dialect.GLOB)

    def block_regex(self, pattern: str) -> bool:
        return self.add_rule(pattern, Dialect.REGEX)

    def remove_rule(self, pattern: str) -> bool:
        raw = (pattern or "").strip()
        pattern = raw.lower()
        if not pattern:
            return False
        # regex rules keep their case, so also try the verbatim key
        keys = {pattern, raw}
        try:
            with self._sessions.begin() as db:
                db.execute(delete(BlockRule).where(BlockRule.pattern.in_(keys)))
        except SQLAlchemyError as e:
            log.error("DB error removing %r: %s", pattern, e)
            return False
        return True

    def _load_rules(self):
        with self._sessions() as db:
            return db.scalars(select(BlockRule)).all()

    def matching_rule(self, candidate: str) -> Optional[RuleOut]:
        """Return the first rule that blocks ``candidate``, or None."""
        if not normalize_host(candidate):
            return None
        try:
            rules = {r.pattern: r for r in self._load_rules()}
        except SQLAlchemyError as e:
            log.error("DB error querying blocked domains: %s", e)
            return None
        hit = first_match(((r.pattern, r.dialect) for r in rules.values()), candidate)
        if hit is None:
            return None
        return RuleOut.model_validate(rules[hit[0]])

    def is_blocked(self, candidate: str) -> bool:
        return self.matching_rule(candidate) is not None

    def list_rules(self) -> List[str]:
        try:
            with self._sessions() as db:
                return list(db.scalars(select(BlockRule.pattern).order_by(*_NEWEST_FIRST)).all())
        except SQLAlchemyError as e:
            log.error("DB error listing blocked domains: %s", e)
            return []

    def list_rules_with_metadata(self) -> List[RuleOut]:
        try:
            with self._sessions() as db:
                rows = db.scalars(select(BlockRule).order_by(*_NEWEST_FIRST)).all()
                return [RuleOut.model_validate(r) for r in rows]
        except SQLAlchemyError as e:
            log.error("DB error listing blocked domains with info: %s", e)
            return []
