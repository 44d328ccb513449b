"""
LeaderboardAggregator: per-configuration rankings of users' best results.

Purpose
-------
Consume completed quiz sessions and answer ranked leaderboard queries per
(clef, duration, max ledger lines) configuration, for three scopes:

- GlobalScope: every user
- GroupScope(group_id): active members of the group, ranked among themselves
- FriendsScope(user_id): the user plus accepted friends, ranked among
  themselves

State Model
-----------
Per configuration the aggregator holds a board: the table of UserAggregates
plus a version. A board is never mutated; an update builds a new board with a
higher version and swaps it in. Scoped snapshots (LeaderboardSnapshot) are
cached per (configuration, scope) and are valid only for the board version
they were built from. Group and friends snapshots additionally expire after
`leaderboard.scoped_cache_ttl_seconds`, since membership changes do not bump
the version.

A configuration's board is loaded on first use from the materialized
leaderboard rows, or rebuilt from completed sessions when there are none.
Every write stamps its rows with a version above any already persisted, and
reads poll the persisted version (at most every
`leaderboard.version_check_interval_seconds`), reloading the board when
another process has written since. A board older than
`leaderboard.board_max_age_seconds` is reloaded regardless.

Update Paths
------------
- Incremental: `on_session_completed` (subscribed at LOW priority, so the
  submitting caller never waits) recomputes one user's aggregate from that
  user's completed sessions under the keyed lock
  ``leaderboard:<configuration>:<user_id>``, persists it and swaps the board.
- Full: `refresh_leaderboards()` reads every completed session from one
  snapshot, rebuilds every board, writes ranked rows and swaps the boards.
  Users updated incrementally while a refresh ran keep their newer aggregate,
  in memory and in the rows (they are written again after the replace).

Leaderboard reads are eventually consistent with session completion.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from collections import OrderedDict
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
)

from notequiz.core.concurrency import KeyedLock
from notequiz.core.exceptions import LockAcquisitionError
from notequiz.core.logging.logger import LogContext, get_logger
from notequiz.core.validation import InputValidator
from notequiz.database.models.enums import SessionStatus
from notequiz.domain.models.leaderboard import (
    FriendsScope,
    GlobalScope,
    GroupScope,
    LeaderboardEntry,
    LeaderboardScope,
    LeaderboardSnapshot,
    UserAggregate,
)
from notequiz.domain.models.quiz_session import ConfigurationKey, QuizSession, utcnow
from notequiz.modules.catalog.service import ConfigurationCatalog
from notequiz.modules.leaderboard.ranking import (
    aggregate_sessions,
    aggregate_user_sessions,
    is_eligible,
    rank_aggregates,
)
from notequiz.modules.leaderboard.resolvers import MembershipResolver
from notequiz.modules.quiz.gateway import PersistenceGateway
from notequiz.modules.shared.base_service import BaseService
from notequiz.modules.shared.exceptions import (
    DependencyError,
    NotFoundError,
    ValidationError,
)


@dataclass(frozen=True)
class _Board:
    """
    One configuration's aggregates at one version.

    `version` tracks the highest version stamped on the persisted rows.
    `stamps` records the update sequence number that last touched each user,
    so a refresh can tell which users changed while it was running.
    `loaded_at` is when the board was last rebuilt from the store.
    """

    aggregates: Dict[uuid.UUID, UserAggregate]
    version: int
    loaded_at: datetime
    stamps: Dict[uuid.UUID, int] = field(default_factory=dict)


class LeaderboardAggregator(BaseService):
    """
    Ranked, scoped leaderboards built from completed sessions.

    Args:
        gateway: PersistenceGateway (sessions and materialized rows)
        catalog: ConfigurationCatalog, for expected question counts
        resolver: MembershipResolver for group and friends scopes
        locks: KeyedLock serializing updates per (configuration, user)
        config_manager: Tunables source
        event_bus: EventBus
        logger: Structured logger
        clock: Returns the current UTC time (injectable for tests)
    """

    REFRESH_LOCK_KEY = "leaderboard:refresh"

    def __init__(
        self,
        gateway: PersistenceGateway,
        catalog: ConfigurationCatalog,
        resolver: MembershipResolver,
        locks: KeyedLock,
        config_manager: Any,
        event_bus: Any,
        logger: Any = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._gateway = gateway
        self._catalog = catalog
        self._resolver = resolver
        self._locks = locks
        self._clock = clock or utcnow

        self._boards: Dict[ConfigurationKey, _Board] = {}
        self._snapshots: "OrderedDict[Tuple[ConfigurationKey, str], LeaderboardSnapshot]" = (
            OrderedDict()
        )
        self._sequence = itertools.count(1)
        self._load_lock = asyncio.Lock()
        self._checked: Dict[ConfigurationKey, datetime] = {}
        self._refreshing = 0

    # ========================================================================
    # INFRASTRUCTURE HELPERS
    # ========================================================================

    @asynccontextmanager
    async def _keyed_lock(self, key: str) -> AsyncIterator[None]:
        wait = float(self.get_config("quiz.lock_wait_timeout_seconds", 5.0))
        async with AsyncExitStack() as stack:
            try:
                await stack.enter_async_context(self._locks.acquire(key, timeout=wait))
            except LockAcquisitionError as exc:
                self.log_error("lock", exc, lock_key=key)
                raise DependencyError(f"lock.{key}", exc, wait) from exc
            yield

    def _expected(self, configuration: ConfigurationKey) -> int:
        return self._catalog.expected_question_count(configuration)

    def _install(self, configuration: ConfigurationKey, board: _Board) -> None:
        self._boards[configuration] = board
        for key in [key for key in self._snapshots if key[0] == configuration]:
            del self._snapshots[key]

    def _cache_snapshot(self, snapshot: LeaderboardSnapshot) -> None:
        key = (snapshot.configuration, snapshot.scope.cache_key)
        self._snapshots[key] = snapshot
        self._snapshots.move_to_end(key)
        capacity = int(self.get_config("leaderboard.snapshot_cache_size", 512))
        while len(self._snapshots) > capacity:
            self._snapshots.popitem(last=False)

    def _user_lock_key(self, configuration: ConfigurationKey, user_id: uuid.UUID) -> str:
        return f"leaderboard:{configuration.name}:{user_id}"

    async def _persisted_version(
        self, configuration: ConfigurationKey, timeout: Optional[float]
    ) -> int:
        return await self.call_dependency(
            "gateway.leaderboard_version",
            self._gateway.leaderboard_version(configuration),
            timeout,
        )

    async def _is_stale(
        self, configuration: ConfigurationKey, board: _Board, timeout: Optional[float]
    ) -> bool:
        """
        Whether another process has written this configuration since `board`
        was loaded.

        The persisted version is polled at most every
        `leaderboard.version_check_interval_seconds`; a board older than
        `leaderboard.board_max_age_seconds` is reloaded regardless. Never
        stale while this process is refreshing, since the refresh installs
        its own board.
        """
        if self._refreshing:
            return False

        now = self._clock()
        max_age = float(self.get_config("leaderboard.board_max_age_seconds", 300.0))
        if (now - board.loaded_at).total_seconds() >= max_age:
            return True

        interval = float(self.get_config("leaderboard.version_check_interval_seconds", 5.0))
        checked = self._checked.get(configuration)
        if checked is not None and (now - checked).total_seconds() < interval:
            return False

        self._checked[configuration] = now
        return await self._persisted_version(configuration, timeout) != board.version

    async def _board(
        self,
        configuration: ConfigurationKey,
        timeout: Optional[float],
        *,
        revalidate: bool = False,
    ) -> _Board:
        """
        The configuration's current board, loading it on first use.

        With `revalidate`, a board another process has since written past is
        reloaded from the materialized rows.
        """
        board = self._boards.get(configuration)
        if board is not None and not (
            revalidate and await self._is_stale(configuration, board, timeout)
        ):
            return board

        async with self._load_lock:
            current = self._boards.get(configuration)
            if current is not None and current is not board:
                return current

            # Version first: rows written after this read trigger another reload.
            version = await self._persisted_version(configuration, timeout)
            aggregates = await self.call_dependency(
                "gateway.load_leaderboard",
                self._gateway.load_leaderboard(configuration),
                timeout,
            )
            source = "materialized"
            if not aggregates:
                sessions = await self.call_dependency(
                    "gateway.list_completed_sessions",
                    self._gateway.list_completed_sessions(configuration),
                    timeout,
                )
                aggregates = aggregate_sessions(sessions, self._expected(configuration))
                source = "sessions"

            now = self._clock()
            board = _Board(
                {aggregate.user_id: aggregate for aggregate in aggregates}, version, now
            )
            self._install(configuration, board)
            self._checked[configuration] = now

        self.log.info(
            "Leaderboard board loaded",
            extra={
                "configuration": configuration.name,
                "source": source,
                "version": version,
                "user_count": len(board.aggregates),
                "reload": current is not None,
            },
        )
        return board

    # ========================================================================
    # INCREMENTAL UPDATES
    # ========================================================================

    async def record_completed_session(
        self, session: QuizSession, *, timeout: Optional[float] = None
    ) -> Optional[UserAggregate]:
        """
        Fold one completed session into its user's aggregate.

        Returns the new aggregate, or None when the session does not count
        (not completed, or fewer answers than the configuration expects).
        """
        configuration = session.configuration
        expected = self._expected(configuration)

        if session.status != SessionStatus.COMPLETED:
            self.log.debug(
                "Session not completed; leaderboard unchanged",
                extra={"session_id": str(session.id), "status": session.status.value},
            )
            return None
        if not is_eligible(session, expected):
            self.log.info(
                "Short session excluded from leaderboard",
                extra={
                    "session_id": str(session.id),
                    "answered": session.total_questions,
                    "expected": expected,
                },
            )
            return None

        async with LogContext(
            user_id=session.user_id,
            session_id=session.id,
            configuration=configuration.name,
            operation="record_completed_session",
        ):
            await self._board(configuration, timeout)

            async with self._keyed_lock(self._user_lock_key(configuration, session.user_id)):
                sessions = await self.call_dependency(
                    "gateway.list_completed_sessions",
                    self._gateway.list_completed_sessions(configuration, session.user_id),
                    timeout,
                )
                if all(existing.id != session.id for existing in sessions):
                    sessions = [*sessions, session]

                aggregate = aggregate_user_sessions(session.user_id, sessions, expected)
                if aggregate is None:
                    return None

                # Stamp past every version any process has written, so readers
                # elsewhere notice this row.
                persisted = await self._persisted_version(configuration, timeout)
                version = max(persisted, self._boards[configuration].version) + 1
                await self.call_dependency(
                    "gateway.save_leaderboard_entry",
                    self._gateway.save_leaderboard_entry(configuration, aggregate, version),
                    timeout,
                )

                # Re-read: other users may have swapped the board meanwhile.
                current = self._boards[configuration]
                self._install(
                    configuration,
                    _Board(
                        {**current.aggregates, aggregate.user_id: aggregate},
                        max(version, current.version),
                        current.loaded_at,
                        {**current.stamps, aggregate.user_id: next(self._sequence)},
                    ),
                )

            self.log_operation(
                "record_completed_session",
                user_id=str(session.user_id),
                configuration=configuration.name,
                best_score=aggregate.best_score,
                total_attempts=aggregate.total_attempts,
            )
            return aggregate

    async def on_session_completed(self, payload: Dict[str, Any]) -> Optional[UserAggregate]:
        """Event listener for `quiz.session_completed`."""
        session_id = InputValidator.validate_uuid(payload.get("session_id"), "session_id")
        try:
            session = await self.call_dependency(
                "gateway.load_session", self._gateway.load_session(session_id)
            )
            if session is None:
                raise NotFoundError("QuizSession", session_id)
            return await self.record_completed_session(session)
        except Exception as exc:
            self.log_error("on_session_completed", exc, session_id=str(session_id))
            raise

    # ========================================================================
    # QUERIES
    # ========================================================================

    def _configuration(
        self, clef: Any, duration_seconds: Any, max_ledger_lines: Any
    ) -> ConfigurationKey:
        return ConfigurationKey(
            InputValidator.validate_string(clef, "clef", min_length=1, max_length=20).lower(),
            InputValidator.validate_positive_integer(duration_seconds, "duration_seconds"),
            InputValidator.validate_non_negative_integer(max_ledger_lines, "max_ledger_lines"),
        )

    def _page_bounds(self, limit: Any, offset: Any) -> Tuple[int, int]:
        if limit is None:
            limit = self.get_config("leaderboard.default_limit", 10)
        limit = InputValidator.validate_positive_integer(
            limit, "limit", max_value=int(self.get_config("leaderboard.max_limit", 100))
        )
        offset = InputValidator.validate_non_negative_integer(offset, "offset")
        return limit, offset

    async def _members(
        self, scope: LeaderboardScope, timeout: Optional[float]
    ) -> Optional[Set[uuid.UUID]]:
        if isinstance(scope, GlobalScope):
            return None
        if isinstance(scope, GroupScope):
            return set(
                await self.call_dependency(
                    "resolver.members_of", self._resolver.members_of(scope.group_id), timeout
                )
            )
        if isinstance(scope, FriendsScope):
            friends = await self.call_dependency(
                "resolver.friends_of", self._resolver.friends_of(scope.user_id), timeout
            )
            return {*friends, scope.user_id}
        raise ValidationError("scope", f"unknown leaderboard scope {scope!r}")

    def _is_fresh(self, snapshot: LeaderboardSnapshot, version: int) -> bool:
        if snapshot.version != version:
            return False
        if isinstance(snapshot.scope, GlobalScope):
            return True
        ttl = float(self.get_config("leaderboard.scoped_cache_ttl_seconds", 30.0))
        return (self._clock() - snapshot.generated_at).total_seconds() < ttl

    async def get_snapshot(
        self,
        configuration: ConfigurationKey,
        scope: LeaderboardScope,
        *,
        timeout: Optional[float] = None,
    ) -> LeaderboardSnapshot:
        """Full ranked snapshot for (configuration, scope), cached per board version."""
        board = await self._board(configuration, timeout, revalidate=True)
        cached = self._snapshots.get((configuration, scope.cache_key))
        if cached is not None and self._is_fresh(cached, board.version):
            return cached

        members = await self._members(scope, timeout)

        board = self._boards[configuration]
        snapshot = LeaderboardSnapshot(
            configuration=configuration,
            scope=scope,
            version=board.version,
            entries=rank_aggregates(board.aggregates.values(), members),
            generated_at=self._clock(),
        )
        self._cache_snapshot(snapshot)
        self.log.debug(
            "Leaderboard snapshot built",
            extra={
                "configuration": configuration.name,
                "scope": scope.cache_key,
                "version": snapshot.version,
                "entry_count": len(snapshot),
            },
        )
        return snapshot

    async def get_leaderboard(
        self,
        configuration: ConfigurationKey,
        scope: Optional[LeaderboardScope] = None,
        limit: Any = None,
        offset: Any = 0,
        *,
        timeout: Optional[float] = None,
    ) -> List[LeaderboardEntry]:
        """
        One page of the ranked leaderboard.

        Raises:
            ValidationError: limit outside 1..leaderboard.max_limit, negative offset
            NotFoundError: Unknown group
            DependencyError: Gateway or resolver failure
        """
        limit, offset = self._page_bounds(limit, offset)
        scope = scope or GlobalScope()

        async with LogContext(configuration=configuration.name, operation="get_leaderboard"):
            snapshot = await self.get_snapshot(configuration, scope, timeout=timeout)
            return list(snapshot.page(limit, offset))

    async def get_global_leaderboard(
        self,
        clef: Any,
        duration_seconds: Any,
        max_ledger_lines: Any,
        limit: Any = None,
        offset: Any = 0,
    ) -> List[LeaderboardEntry]:
        configuration = self._configuration(clef, duration_seconds, max_ledger_lines)
        return await self.get_leaderboard(configuration, GlobalScope(), limit, offset)

    async def get_group_leaderboard(
        self,
        group_id: Any,
        clef: Any,
        duration_seconds: Any,
        max_ledger_lines: Any,
        limit: Any = None,
        offset: Any = 0,
    ) -> List[LeaderboardEntry]:
        group_id = InputValidator.validate_uuid(group_id, "group_id")
        configuration = self._configuration(clef, duration_seconds, max_ledger_lines)
        return await self.get_leaderboard(configuration, GroupScope(group_id), limit, offset)

    async def get_friends_leaderboard(
        self,
        user_id: Any,
        clef: Any,
        duration_seconds: Any,
        max_ledger_lines: Any,
        limit: Any = None,
        offset: Any = 0,
    ) -> List[LeaderboardEntry]:
        user_id = InputValidator.validate_uuid(user_id, "user_id")
        configuration = self._configuration(clef, duration_seconds, max_ledger_lines)
        return await self.get_leaderboard(configuration, FriendsScope(user_id), limit, offset)

    async def get_user_ranking(
        self,
        user_id: Any,
        clef: Any,
        duration_seconds: Any,
        max_ledger_lines: Any,
        scope: Optional[LeaderboardScope] = None,
    ) -> LeaderboardEntry:
        """
        The user's entry within `scope` (global by default).

        Raises:
            NotFoundError: The user has no counted session in this scope
        """
        user_id = InputValidator.validate_uuid(user_id, "user_id")
        configuration = self._configuration(clef, duration_seconds, max_ledger_lines)

        snapshot = await self.get_snapshot(configuration, scope or GlobalScope())
        entry = snapshot.entry_for(user_id)
        if entry is None:
            raise NotFoundError("LeaderboardEntry", user_id)
        return entry

    # ========================================================================
    # FULL REFRESH
    # ========================================================================

    async def refresh_leaderboards(self, *, timeout: Optional[float] = None) -> Dict[str, int]:
        """
        Rebuild every configuration's board from one snapshot of completed
        sessions and rewrite the materialized rows with global ranks.

        Returns entry counts per configuration name.
        """
        async with LogContext(operation="refresh_leaderboards"):
            async with self._keyed_lock(self.REFRESH_LOCK_KEY):
                self._refreshing += 1
                try:
                    counts, session_count = await self._refresh_all(timeout)
                finally:
                    self._refreshing -= 1

            self.log_operation(
                "refresh_leaderboards",
                configuration_count=len(counts),
                session_count=session_count,
            )
            return counts

    async def _refresh_all(self, timeout: Optional[float]) -> Tuple[Dict[str, int], int]:
        mark = next(self._sequence)
        sessions = await self.call_dependency(
            "gateway.snapshot_completed_sessions",
            self._gateway.snapshot_completed_sessions(),
            timeout,
        )

        by_configuration: Dict[ConfigurationKey, List[QuizSession]] = {}
        for session in sessions:
            by_configuration.setdefault(session.configuration, []).append(session)

        configurations = sorted(set(by_configuration) | set(self._boards))
        counts: Dict[str, int] = {}
        for configuration in configurations:
            rebuilt = aggregate_sessions(
                by_configuration.get(configuration, []),
                self._expected(configuration),
            )
            counts[configuration.name] = await self._replace_board(
                configuration, rebuilt, mark, timeout
            )
        return counts, len(sessions)

    def _merge_concurrent(
        self, configuration: ConfigurationKey, rebuilt: Iterable[UserAggregate], mark: int
    ) -> Tuple[Dict[uuid.UUID, UserAggregate], Dict[uuid.UUID, int]]:
        """Rebuilt aggregates, keeping any user updated after `mark`."""
        aggregates = {aggregate.user_id: aggregate for aggregate in rebuilt}
        stamps: Dict[uuid.UUID, int] = {}

        current = self._boards.get(configuration)
        if current is not None:
            for user_id, stamp in current.stamps.items():
                if stamp > mark:
                    aggregates[user_id] = current.aggregates[user_id]
                    stamps[user_id] = stamp
        return aggregates, stamps

    async def _replace_board(
        self,
        configuration: ConfigurationKey,
        rebuilt: List[UserAggregate],
        mark: int,
        timeout: Optional[float],
    ) -> int:
        persisted = await self._persisted_version(configuration, timeout)
        aggregates, _ = self._merge_concurrent(configuration, rebuilt, mark)
        current = self._boards.get(configuration)
        version = max(persisted, current.version if current is not None else 0) + 1

        await self.call_dependency(
            "gateway.replace_leaderboard",
            self._gateway.replace_leaderboard(
                configuration, rank_aggregates(aggregates.values()), version
            ),
            timeout,
        )

        # The replace dropped rows saved by incremental updates that ran
        # alongside it; write those users back.
        _, late = self._merge_concurrent(configuration, (), mark)
        for user_id in sorted(late):
            async with self._keyed_lock(self._user_lock_key(configuration, user_id)):
                aggregate = self._boards[configuration].aggregates[user_id]
                version += 1
                await self.call_dependency(
                    "gateway.save_leaderboard_entry",
                    self._gateway.save_leaderboard_entry(configuration, aggregate, version),
                    timeout,
                )
        if late:
            self.log.info(
                "Concurrent leaderboard updates re-persisted after refresh",
                extra={"configuration": configuration.name, "user_count": len(late)},
            )

        # Merge again: incremental updates may have landed during the writes.
        aggregates, stamps = self._merge_concurrent(configuration, rebuilt, mark)
        current = self._boards.get(configuration)
        version = max(version, current.version if current is not None else 0)
        now = self._clock()
        self._install(configuration, _Board(aggregates, version, now, stamps))
        self._checked[configuration] = now
        return len(aggregates)
