from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List
from datetime import datetime

class _Camel(BaseModel):
    # the dashboard client reads camelCase keys
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)

class RuleIn(BaseModel):
    pattern: str
    dialect: str = "exact"

class RuleOut(_Camel):
    pattern: str
    dialect: str
    created_at: datetime

class BlockCheck(BaseModel):
    host: str
    blocked: bool

class LogRequestIn(BaseModel):
    host: str
    method: str = "CONNECT"
    path: str = ""
    port: int = Field(ge=0, le=65535)
    approved: bool
    duration: int = Field(default=0, ge=0)  # nanoseconds

class ConnectionBucket(_Camel):
    timestamp: int  # bucket start, epoch ms
    count: int = 0
    approved: int = 0
    rejected: int = 0

class RequestDetail(_Camel):
    timestamp: int
    host: str
    method: str
    path: str
    port: int
    decision: str
    duration: float

class Dashboard(_Camel):
    time_range: str
    total_requests: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    connections: List[ConnectionBucket] = []
    requests: List[RequestDetail] = []

class WriterStats(BaseModel):
    running: bool
    pending: int
    written: int
    dropped: int
    failed: int
