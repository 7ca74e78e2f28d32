import threading
import pytest

from localproxy.database import create_db_engine, make_session_factory, init_db
from localproxy.blocklist import RuleStore
from localproxy.request_log import LogWriter


@pytest.fixture
def engine(tmp_path):
    eng = create_db_engine(tmp_path / "test.db")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sessions(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(sessions):
    return RuleStore(sessions)


@pytest.fixture
def writer(sessions):
    w = LogWriter(sessions)
    w.start()
    yield w
    w.stop(timeout=5)


class GatedSessions:
    """Session factory whose writes wait until ``gate`` is set."""

    def __init__(self, factory):
        self.factory = factory
        self.gate = threading.Event()

    def __call__(self):
        return self.factory()

    def begin(self):
        self.gate.wait(10)
        return self.factory.begin()


@pytest.fixture
def gated_sessions(sessions):
    gated = GatedSessions(sessions)
    yield gated
    gated.gate.set()
