import logging, os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from .database import create_db_engine, make_session_factory, init_db, session_dependency
from .schemas import RuleIn, RuleOut, BlockCheck, LogRequestIn, Dashboard, WriterStats
from .settings import load_settings_from_env, parse_bool, db_path, drain_timeout
from .blocklist import RuleStore
from .request_log import LogWriter
from .analytics import get_dashboard, DEFAULT_RANGE

logging.basicConfig(level=os.getenv("BACKEND_LOG_LEVEL","INFO"))
log = logging.getLogger("app")

def create_app(settings: dict = None) -> FastAPI:
    """Build the API around one database, one rule store and one log writer.

    Run with ``uvicorn --factory localproxy.main:create_app``.
    """
    settings = {**load_settings_from_env(), **(settings or {})}
    engine = create_db_engine(db_path(settings), int(settings["BUSY_TIMEOUT_MS"]))
    init_db(engine)
    sessions = make_session_factory(engine)
    store = RuleStore(sessions)
    writer = LogWriter(
        sessions,
        maxsize=int(settings["LOG_QUEUE_SIZE"]),
        stamp_on_enqueue=parse_bool(settings["LOG_STAMP_ON_ENQUEUE"]),
        slow_write_ms=float(settings["LOG_SLOW_WRITE_MS"]),
    )
    get_db = session_dependency(sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        writer.start()
        log.info("Using database %s", db_path(settings))
        try:
            yield
        finally:
            writer.stop(timeout=drain_timeout(settings))
            engine.dispose()

    app = FastAPI(title="Local Proxy Blocklist API", lifespan=lifespan,
                  default_response_class=ORJSONResponse)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.rule_store = store
    app.state.log_writer = writer

    # ---------------- API ----------------

    @app.get("/api/health")
    def health():
        return {"status":"ok", "log_writer": writer.running}

    @app.get("/api/rules", response_model=list[RuleOut])
    def list_rules():
        return store.list_rules_with_metadata()

    @app.get("/api/rules/patterns", response_model=list[str])
    def list_patterns():
        return store.list_rules()

    @app.post("/api/rules", status_code=201)
    def create_rule(payload: RuleIn):
        if not store.add_rule(payload.pattern, payload.dialect):
            raise HTTPException(400, "Pattern is empty, an invalid regex, or could not be stored")
        return {"ok": True}

    @app.delete("/api/rules")
    def delete_rule(pattern: str = Query(...)):
        if not store.remove_rule(pattern):
            raise HTTPException(400, "Pattern is empty or could not be removed")
        return {"ok": True}

    @app.get("/api/check", response_model=BlockCheck)
    def check(host: str = Query(...)):
        return BlockCheck(host=host, blocked=store.is_blocked(host))

    @app.post("/api/requests", status_code=202)
    def log_request(item: LogRequestIn):
        queued = writer.log_request(item.host, item.method, item.path, item.port,
                                    item.approved, item.duration)
        return {"queued": queued}

    @app.get("/api/dashboard", response_model=Dashboard)
    def dashboard(range_key: str = Query(DEFAULT_RANGE, alias="range"), db: Session = Depends(get_db)):
        return get_dashboard(db, range_key)

    @app.get("/api/log-writer", response_model=WriterStats)
    def writer_stats():
        return WriterStats(running=writer.running, pending=writer.pending,
                           written=writer.written, dropped=writer.dropped, failed=writer.failed)

    return app
