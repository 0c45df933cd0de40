#!/usr/bin/env python3
"""
Session Watcher - Watch the conversation log directory and drive the pipeline.

On every write event:
    read file -> parse -> extract facts -> estimate tokens
    smart mode:  score facts -> push facts -> append ledger entry
                 -> precompact check -> handoff (at most once per interval)
    basic mode:  push facts with their extractor defaults

Startup subscribes to the directory, then sweeps files already there.
Events are handled one at a time on the observer's dispatch thread, so
filesystem order is preserved and a slow record store call delays the next
event. Stop waits for the in-flight cycle, writes a forced handoff (smart
mode) and records the session.

Failures inside a cycle are logged (verbose mode) and never stop the
watcher. The ledger and the record store are independent: one failing does
not skip the other.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import config
from .config import ConfigurationError
from .continuity_ledger import ContinuityLedger, LedgerEntry, LedgerError
from .conversation_types import Fact, utc_now
from .fact_extractor import FactExtractor
from .log_parser import LogParser, count_tokens
from .record_store import RecordStoreClient, RecordStoreError
from .smart import (
    CompressibleFact,
    ContextCompressor,
    ImportanceScorer,
    PreCompactDetector,
    StaleDetector,
)

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Continued development work."


@dataclass
class WatcherConfig:
    log_path: str
    project_id: str
    repo_path: str = "."
    verbose: bool = False
    smart_mode: bool = True
    compact_threshold: int = 170000
    max_facts_per_type: int = 10
    handoff_interval: timedelta = timedelta(minutes=30)
    log_suffixes: Tuple[str, ...] = (".log",)

    @classmethod
    def from_env(cls, **overrides) -> "WatcherConfig":
        """Build a config from ccd.config, letting non-None overrides win."""
        values = {
            "log_path": config.LOG_DIR,
            "project_id": config.PROJECT_ID,
            "repo_path": str(config.REPO_PATH),
            "verbose": config.VERBOSE,
            "smart_mode": config.SMART_MODE,
            "compact_threshold": config.COMPACT_THRESHOLD,
            "max_facts_per_type": config.MAX_FACTS_PER_TYPE,
            "handoff_interval": timedelta(minutes=config.HANDOFF_INTERVAL_MINUTES),
            "log_suffixes": tuple(config.LOG_SUFFIXES),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class WatcherState(Enum):
    CREATED = "created"
    IDLE = "idle"
    PROCESSING = "processing"
    STOPPED = "stopped"


class LogEventHandler(FileSystemEventHandler):
    """Forward file write events to the watcher."""

    def __init__(self, watcher: "SessionWatcher"):
        self.watcher = watcher

    def on_modified(self, event):
        if event.is_directory:
            return
        path = Path(str(event.src_path))
        if self.watcher.config.verbose:
            logger.debug("Modified file: %s", path)
        self.watcher.process_log_file(path)


def build_handoff_summary(entry: LedgerEntry) -> str:
    summary = ""
    if entry.decisions:
        summary += "Made architectural decisions. "
    if entry.blockers:
        summary += "Encountered blockers. "
    if entry.file_changes:
        summary += "Modified codebase. "
    return summary.strip() or DEFAULT_SUMMARY


class SessionWatcher:
    """
    Orchestrates one monitoring session for one project.

    All mutable daemon state (session id, token count, last handoff time)
    lives on this instance.
    """

    def __init__(self, watcher_config: WatcherConfig, client: RecordStoreClient,
                 clock: Callable[[], datetime] = utc_now,
                 observer_factory: Callable[[], Observer] = Observer):
        self.config = watcher_config
        self.client = client
        self.clock = clock
        self.observer_factory = observer_factory
        self._observer = None

        self.parser = LogParser()
        self.extractor = FactExtractor()

        self.started_at = clock()
        self.session_id = self.started_at.strftime("%Y%m%d_%H%M%S")
        self.current_tokens = 0
        self.last_handoff: Optional[datetime] = None
        self._handoff_lock = threading.Lock()
        self._ledger_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._in_flight = 0
        self._stopped = False
        self._started = False

        self.ledger: Optional[ContinuityLedger] = None
        if watcher_config.smart_mode:
            # Raises OSError if the ledger directories cannot be created
            self.ledger = ContinuityLedger(watcher_config.project_id, watcher_config.repo_path,
                                           clock=clock)
            self.scorer = ImportanceScorer()
            self.stale_detector = StaleDetector()
            self.compressor = ContextCompressor(watcher_config.max_facts_per_type)
            self.compact_detector = PreCompactDetector(watcher_config.compact_threshold)

    @property
    def state(self) -> WatcherState:
        with self._state_lock:
            if self._stopped:
                return WatcherState.STOPPED
            if self._in_flight:
                return WatcherState.PROCESSING
            return WatcherState.IDLE if self._started else WatcherState.CREATED

    # ============== LIFECYCLE ==============

    def start(self):
        """Subscribe to the log directory, then sweep the files already in it."""
        log_dir = Path(self.config.log_path) if self.config.log_path else None
        if log_dir is None or not log_dir.is_dir():
            raise ConfigurationError(f"Log directory does not exist: {self.config.log_path!r}")

        self._observer = self.observer_factory()
        self._observer.schedule(LogEventHandler(self), str(log_dir), recursive=False)
        self._observer.start()

        try:
            self.process_existing_logs()
        except OSError as e:
            logger.warning("Failed to process existing logs: %s", e)

        with self._state_lock:
            self._started = True
        logger.info("Watching %s (session %s, smart mode %s)",
                    log_dir, self.session_id, "on" if self.config.smart_mode else "off")

    def stop(self):
        """Finish the in-flight cycle, write the final handoff and record the session."""
        if self._stopped:
            return

        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

        if self.config.smart_mode:
            self.create_handoff_if_needed(force=True)
        self._record_session()

        with self._state_lock:
            self._stopped = True
        logger.info("Session %s stopped", self.session_id)

    # ============== PROCESSING ==============

    def process_existing_logs(self):
        log_dir = Path(self.config.log_path)
        for path in sorted(log_dir.iterdir()):
            if path.is_file() and path.suffix in self.config.log_suffixes:
                self.process_log_file(path)

    def process_log_file(self, path: Path) -> Optional[List[Fact]]:
        """Run one processing cycle. Returns the facts, or None if the file was unreadable."""
        with self._state_lock:
            self._in_flight += 1
        try:
            return self._process(Path(path))
        finally:
            with self._state_lock:
                self._in_flight -= 1

    def _process(self, path: Path) -> Optional[List[Fact]]:
        try:
            data = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            if self.config.verbose:
                logger.warning("Failed to read log file %s: %s", path, e)
            return None

        conversation = self.parser.parse(data)
        facts = self.extractor.extract_facts(conversation, now=self.clock())
        token_count = count_tokens(conversation)
        self.current_tokens = token_count

        if self.config.smart_mode:
            self._process_smart(facts, token_count)
        else:
            for fact in facts:
                self._push_fact(fact)

        if self.config.verbose:
            logger.debug("%s: %d messages, %d facts, %d tokens",
                         path.name, len(conversation.messages), len(facts), token_count)
        return facts

    def _process_smart(self, facts: List[Fact], token_count: int):
        now = self.clock()
        for fact in facts:
            fact.importance = self.scorer.calculate_importance(
                fact.type, fact.content, fact.timestamp, now=now)
            self._push_fact(fact)

        # Stamp and append together so entries land in timestamp order
        # when the startup sweep overlaps observer events
        with self._ledger_lock:
            entry = LedgerEntry(
                timestamp=self.clock(),
                session_id=self.session_id,
                project_id=self.config.project_id,
                token_count=token_count,
                facts=list(facts),
            )
            try:
                self.ledger.append_entry(entry)
            except OSError as e:
                if self.config.verbose:
                    logger.warning("Failed to update ledger: %s", e)

        if self.compact_detector.should_create_handoff(token_count):
            self.create_handoff_if_needed(force=False)

        if self.config.verbose:
            logger.debug("Smart features: %d facts processed, %d tokens remaining until compact",
                         len(facts), self.compact_detector.time_until_compact(token_count))

    def _push_fact(self, fact: Fact):
        try:
            self.client.create_fact(self.config.project_id, fact)
        except RecordStoreError as e:
            if self.config.verbose:
                logger.warning("Failed to create fact (%s): %s", fact.type.value, e)
            return
        if self.config.verbose:
            logger.debug("Created fact (importance: %d): %s (%s)",
                         fact.importance, fact.content, fact.type.value)

    # ============== HANDOFFS ==============

    def select_handoff_facts(self, facts: List[Fact], now: datetime) -> List[Fact]:
        """Flag stale facts and keep the compressor's selection."""
        candidates = [CompressibleFact.from_fact(f) for f in facts]
        for candidate in candidates:
            candidate.stale = self.stale_detector.is_stale(
                candidate.type, candidate.created, candidate.content, now=now)
        return [c.to_fact() for c in self.compressor.compress(candidates)]

    def create_handoff_if_needed(self, force: bool = False) -> Optional[Path]:
        """
        Write a handoff from the latest ledger entry.

        Non-forced calls are skipped while the last handoff is younger than
        the configured interval. Returns the document path, or None.
        """
        if self.ledger is None:
            return None

        with self._handoff_lock:
            now = self.clock()
            if (not force and self.last_handoff is not None
                    and now - self.last_handoff < self.config.handoff_interval):
                return None

            try:
                latest = self.ledger.get_latest_entry()
            except (LedgerError, OSError, ValueError) as e:
                if self.config.verbose:
                    logger.warning("Failed to get latest ledger entry: %s", e)
                return None

            summary = build_handoff_summary(latest)
            facts = self.select_handoff_facts(latest.facts, now)
            try:
                path = self.ledger.create_handoff(self.session_id, summary, facts)
            except OSError as e:
                if self.config.verbose:
                    logger.warning("Failed to create handoff: %s", e)
                return None

            self.last_handoff = now

        if self.config.verbose or force:
            logger.info("Handoff created: %s (tokens: %d, facts: %d)",
                        path.name, latest.token_count, len(facts))
        return path

    def _record_session(self):
        summary = DEFAULT_SUMMARY
        if self.ledger is not None:
            try:
                summary = build_handoff_summary(self.ledger.get_latest_entry())
            except (LedgerError, OSError, ValueError) as e:
                logger.debug("No ledger entry for session summary: %s", e)

        try:
            self.client.create_session(self.config.project_id, summary, self.current_tokens,
                                       self.started_at, self.clock())
        except RecordStoreError as e:
            if self.config.verbose:
                logger.warning("Failed to record session: %s", e)
