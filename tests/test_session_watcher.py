"""Tests for the session watcher pipeline."""
import json
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from watchdog.events import DirModifiedEvent, FileModifiedEvent

from ccd import session_watcher
from ccd.config import ConfigurationError
from ccd.continuity_ledger import LedgerEntry
from ccd.conversation_types import Fact, FactType
from ccd.record_store import RecordStoreError
from ccd.session_watcher import (
    LogEventHandler,
    SessionWatcher,
    WatcherConfig,
    WatcherState,
    build_handoff_summary,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

LOG_TEXT = (
    "User: can we ship?\n"
    "Assistant: I decided to use Postgres. The deploy is blocked by a crash in CI.\n"
)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeClient:
    def __init__(self, fail_on=()):
        self.facts = []
        self.sessions = []
        self.fail_on = set(fail_on)

    def create_fact(self, project_id, fact):
        if fact.type in self.fail_on:
            raise RecordStoreError("boom")
        self.facts.append((project_id, fact.type, fact.content, fact.importance))
        return {}

    def create_session(self, project_id, summary, token_count, session_start, session_end=None):
        self.sessions.append((project_id, summary, token_count, session_start, session_end))
        return {}


class FakeObserver:
    def __init__(self):
        self.scheduled = []
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        self.joined = True


@pytest.fixture
def dirs(tmp_path):
    logs = tmp_path / "logs"
    repo = tmp_path / "repo"
    logs.mkdir()
    repo.mkdir()
    return logs, repo


def _watcher(dirs, client=None, clock=None, **overrides):
    logs, repo = dirs
    values = dict(log_path=str(logs), project_id="proj1", repo_path=str(repo), verbose=True)
    values.update(overrides)
    observer = FakeObserver()
    watcher = SessionWatcher(WatcherConfig(**values), client or FakeClient(),
                             clock=clock or FakeClock(), observer_factory=lambda: observer)
    return watcher, observer


def _handoffs(repo):
    return sorted((repo / "thoughts" / "shared" / "handoffs").glob("handoff_*.md"))


def test_smart_cycle_scores_pushes_and_records_ledger(dirs):
    logs, repo = dirs
    client = FakeClient()
    watcher, _ = _watcher(dirs, client=client)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")

    facts = watcher.process_log_file(log_file)

    assert {f.type for f in facts} == {FactType.DECISION, FactType.BLOCKER}
    # Blocker: 3.0 type + 0.3 "crash" + 0.5 fresh -> 4 after rounding
    pushed = {t: imp for _, t, _, imp in client.facts}
    assert pushed[FactType.BLOCKER] == 4
    assert pushed[FactType.DECISION] == 3

    entry = watcher.ledger.get_latest_entry()
    assert entry.session_id == watcher.session_id
    assert entry.project_id == "proj1"
    assert entry.token_count == watcher.current_tokens > 0
    assert entry.decisions == ["I decided to use Postgres"]
    assert entry.blockers == ["The deploy is blocked by a crash in CI"]


def test_basic_mode_skips_ledger_and_keeps_default_importance(dirs):
    logs, repo = dirs
    client = FakeClient()
    watcher, _ = _watcher(dirs, client=client, smart_mode=False)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")

    watcher.process_log_file(log_file)

    assert {(t, imp) for _, t, _, imp in client.facts} == {
        (FactType.DECISION, 4), (FactType.BLOCKER, 5)}
    assert watcher.ledger is None
    assert not (repo / "thoughts").exists()
    assert watcher.create_handoff_if_needed(force=True) is None


def test_remote_failure_does_not_abort_batch_or_ledger(dirs):
    logs, _ = dirs
    client = FakeClient(fail_on={FactType.DECISION})
    watcher, _ = _watcher(dirs, client=client)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")

    watcher.process_log_file(log_file)

    assert [t for _, t, _, _ in client.facts] == [FactType.BLOCKER]
    assert len(watcher.ledger.get_latest_entry().facts) == 2


def test_unreadable_file_skips_cycle(dirs):
    logs, repo = dirs
    client = FakeClient()
    watcher, _ = _watcher(dirs, client=client)
    assert watcher.process_log_file(logs / "missing.log") is None
    assert client.facts == []
    assert list((repo / "thoughts" / "ledgers").iterdir()) == []


def test_handoff_debounce_within_interval(dirs):
    logs, repo = dirs
    clock = FakeClock()
    watcher, _ = _watcher(dirs, clock=clock)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")
    watcher.process_log_file(log_file)

    first = watcher.create_handoff_if_needed(force=False)
    clock.advance(minutes=10)
    second = watcher.create_handoff_if_needed(force=False)

    assert first is not None
    assert second is None
    assert len(_handoffs(repo)) == 1

    clock.advance(minutes=21)
    assert watcher.create_handoff_if_needed(force=False) is not None
    assert len(_handoffs(repo)) == 2


def test_forced_handoff_bypasses_debounce(dirs):
    logs, repo = dirs
    clock = FakeClock()
    watcher, _ = _watcher(dirs, clock=clock)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")
    watcher.process_log_file(log_file)

    watcher.create_handoff_if_needed(force=False)
    clock.advance(seconds=5)
    assert watcher.create_handoff_if_needed(force=True) is not None
    assert len(_handoffs(repo)) == 2


def test_handoff_without_ledger_entries_is_skipped(dirs):
    _, repo = dirs
    watcher, _ = _watcher(dirs)
    assert watcher.create_handoff_if_needed(force=True) is None
    assert _handoffs(repo) == []


def test_precompact_threshold_triggers_handoff(dirs):
    logs, repo = dirs
    watcher, _ = _watcher(dirs, compact_threshold=10)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")

    watcher.process_log_file(log_file)

    handoffs = _handoffs(repo)
    assert len(handoffs) == 1
    text = handoffs[0].read_text(encoding="utf-8")
    assert "Made architectural decisions. Encountered blockers." in text
    assert "I decided to use Postgres" in text


def test_below_threshold_writes_no_handoff(dirs):
    logs, repo = dirs
    watcher, _ = _watcher(dirs)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")
    watcher.process_log_file(log_file)
    assert _handoffs(repo) == []


def test_handoff_facts_drop_stale(dirs):
    watcher, _ = _watcher(dirs)
    facts = [
        Fact(FactType.TODO, "migrations are done", 3, T0),
        Fact(FactType.TODO, "write docs", 3, T0),
        Fact(FactType.BLOCKER, "ci down", 5, T0 - timedelta(days=5)),
    ]
    selected = watcher.select_handoff_facts(facts, T0)
    assert [f.content for f in selected] == ["write docs"]


def test_start_requires_existing_log_dir(tmp_path):
    watcher, observer = _watcher((tmp_path / "nope", tmp_path))
    with pytest.raises(ConfigurationError):
        watcher.start()
    assert not observer.started


def test_start_sweeps_existing_logs_and_stop_finalizes(dirs):
    logs, repo = dirs
    client = FakeClient()
    clock = FakeClock()
    watcher, observer = _watcher(dirs, client=client, clock=clock)
    (logs / "a.log").write_text(LOG_TEXT, encoding="utf-8")
    (logs / "notes.txt").write_text("Assistant: I decided to use Redis.", encoding="utf-8")

    assert watcher.state is WatcherState.CREATED
    watcher.start()

    assert observer.started
    handler, path, recursive = observer.scheduled[0]
    assert isinstance(handler, LogEventHandler)
    assert path == str(logs) and recursive is False
    assert watcher.state is WatcherState.IDLE
    assert all("Redis" not in content for _, _, content, _ in client.facts)
    assert len(client.facts) == 2

    clock.advance(minutes=1)
    watcher.stop()

    assert observer.stopped and observer.joined
    assert len(_handoffs(repo)) == 1
    assert len(client.sessions) == 1
    project, summary, tokens, start, end = client.sessions[0]
    assert project == "proj1"
    assert summary == "Made architectural decisions. Encountered blockers."
    assert tokens == watcher.current_tokens
    assert end - start == timedelta(minutes=1)
    assert watcher.state is WatcherState.STOPPED


def test_event_handler_processes_file_events_only(dirs):
    logs, _ = dirs
    client = FakeClient()
    watcher, _ = _watcher(dirs, client=client, smart_mode=False)
    log_file = logs / "live.jsonl"
    log_file.write_text('{"messages": [{"role": "assistant", "content": "TODO: add tests"}]}',
                        encoding="utf-8")
    handler = LogEventHandler(watcher)

    handler.on_modified(DirModifiedEvent(str(logs)))
    assert client.facts == []

    handler.on_modified(FileModifiedEvent(str(log_file)))
    assert [(t, c) for _, t, c, _ in client.facts] == [(FactType.TODO, "TODO: add tests")]


def test_summary_default():
    entry = LedgerEntry(timestamp=T0, session_id="s", project_id="p", token_count=0)
    assert build_handoff_summary(entry) == "Continued development work."


class TickingClock:
    """Advances one second per reading; shared by concurrent cycles."""

    def __init__(self, now=T0):
        self.now = now
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.now += timedelta(seconds=1)
            return self.now


class BlockingClient(FakeClient):
    """Holds the first fact push until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self._first = True

    def create_fact(self, project_id, fact):
        if self._first:
            self._first = False
            self.entered.set()
            self.release.wait(5)
        return super().create_fact(project_id, fact)


def test_overlapping_cycles_keep_ledger_in_timestamp_order(dirs):
    logs, repo = dirs
    client = BlockingClient()
    watcher, _ = _watcher(dirs, client=client, clock=TickingClock())
    slow_log = logs / "a.log"
    fast_log = logs / "b.log"
    slow_log.write_text(LOG_TEXT, encoding="utf-8")
    fast_log.write_text("Assistant: TODO: write docs.\n", encoding="utf-8")

    slow = threading.Thread(target=watcher.process_log_file, args=(slow_log,))
    slow.start()
    assert client.entered.wait(5)
    watcher.process_log_file(fast_log)
    client.release.set()
    slow.join(5)

    ledger_files = list((repo / "thoughts" / "ledgers").glob("CONTINUITY_*.jsonl"))
    assert len(ledger_files) == 1
    lines = ledger_files[0].read_text(encoding="utf-8").splitlines()
    stamps = [LedgerEntry.from_dict(json.loads(line)).timestamp for line in lines]
    assert len(stamps) == 2
    assert stamps == sorted(stamps)


def test_handoff_write_failure_is_silent_when_not_verbose(dirs, monkeypatch):
    logs, repo = dirs
    watcher, _ = _watcher(dirs, verbose=False)
    log_file = logs / "session.log"
    log_file.write_text(LOG_TEXT, encoding="utf-8")
    watcher.process_log_file(log_file)

    def fail(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(watcher.ledger, "create_handoff", fail)
    fake_logger = MagicMock()
    monkeypatch.setattr(session_watcher, "logger", fake_logger)

    assert watcher.create_handoff_if_needed(force=False) is None
    assert watcher.last_handoff is None
    fake_logger.error.assert_not_called()
    fake_logger.warning.assert_not_called()

    watcher.config.verbose = True
    assert watcher.create_handoff_if_needed(force=False) is None
    fake_logger.warning.assert_called_once()
