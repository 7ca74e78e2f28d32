import enum
from sqlalchemy import Column, Integer, String, DateTime, Float, BigInteger, CheckConstraint
from datetime import datetime, timezone
from .database import Base

class Dialect(str, enum.Enum):
    EXACT = "exact"
    GLOB = "glob"
    REGEX = "regex"

    @classmethod
    def coerce(cls, value) -> "Dialect":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.EXACT

class Decision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"

class BlockRule(Base):
    __tablename__ = "blocked_domains"
    __table_args__ = (
        CheckConstraint("dialect IN ('exact', 'glob', 'regex')", name="ck_blocked_domains_dialect"),
    )
    pattern = Column(String, primary_key=True)       # lower-cased unless dialect is regex
    dialect = Column(String, nullable=False, default=Dialect.EXACT.value)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

class LogEvent(Base):
    __tablename__ = "requests"
    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(BigInteger, nullable=False, index=True)  # epoch milliseconds
    host = Column(String, nullable=False, index=True)
    method = Column(String, nullable=False)
    path = Column(String, nullable=False, default="")
    port = Column(Integer, nullable=False)
    decision = Column(String, nullable=False, index=True)  # 'approved','rejected'
    duration = Column(Float, nullable=False)  # nanoseconds
