"""
ExpenseScheduleOrchestrator -- DI container for the schedule engine.

Contract:
    Wires the store, recurrence calculator, reconciler, side-effect
    coordinator, lifecycle manager, batch processor, and runner from one
    session factory, one Clock, and one ScheduleSettings.  Single place
    where all schedule-engine dependencies are composed.

Architecture: expense_schedules (top-level).  This is the canonical entry
    point for applications and the command line.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Collaborators default to no-op implementations; callers plug in real
      statistics and home-currency services.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from expense_kernel.db.engine import get_session_factory, init_engine_from_url
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.logging_config import get_logger
from expense_schedules.config import ScheduleSettings
from expense_schedules.domain.recurrence import RangeExpander, RecurrenceCalculator
from expense_schedules.services.collaborators import (
    AccountOwnershipPolicy,
    CarStatsRecalculator,
    HomeCurrencyResolver,
    NoHomeCurrency,
    NullCarStatsRecalculator,
    NullServiceIntervalRecalculator,
    ServiceIntervalRecalculator,
    VehicleAccessPolicy,
)
from expense_schedules.services.lifecycle import ScheduleLifecycleManager
from expense_schedules.services.processor import BatchProcessor
from expense_schedules.services.reconciler import ScheduleReconciler
from expense_schedules.services.runner import ScheduleRunner
from expense_schedules.services.side_effects import SideEffectCoordinator
from expense_schedules.services.store import ScheduleStore

logger = get_logger("schedules.orchestrator")


class ExpenseScheduleOrchestrator:
    """DI container for the expense schedule engine.

    Contract:
        - ``from_session_factory()`` / ``from_url()`` create a fully wired
          orchestrator.
        - ``lifecycle`` serves user operations; ``processor`` runs batches.
        - ``create_runner()`` returns a ScheduleRunner for background use.

    Non-goals:
        - Does NOT start the runner automatically -- caller decides.
        - Does NOT create tables; see ``expense_kernel.db.create_tables``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: ScheduleSettings | None = None,
        car_stats: CarStatsRecalculator | None = None,
        service_intervals: ServiceIntervalRecalculator | None = None,
        home_currency: HomeCurrencyResolver | None = None,
        access_policy: VehicleAccessPolicy | None = None,
        store: ScheduleStore | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or ScheduleSettings()
        self._store = store or ScheduleStore()

        self._calculator = RecurrenceCalculator(
            weekly_search_days=self._settings.weekly_search_days,
            monthly_search_days=self._settings.monthly_search_days,
            yearly_search_years=self._settings.yearly_search_years,
        )
        self._expander = RangeExpander(
            self._calculator, max_iterations=self._settings.max_range_iterations
        )
        self._reconciler = ScheduleReconciler(
            store=self._store,
            home_currency=home_currency or NoHomeCurrency(),
            clock=self._clock,
            default_currency=self._settings.default_currency,
        )
        self._side_effects = SideEffectCoordinator(
            car_stats=car_stats or NullCarStatsRecalculator(),
            service_intervals=service_intervals or NullServiceIntervalRecalculator(),
        )
        self._lifecycle = ScheduleLifecycleManager(
            session_factory=session_factory,
            store=self._store,
            reconciler=self._reconciler,
            expander=self._expander,
            side_effects=self._side_effects,
            access_policy=access_policy or AccountOwnershipPolicy(),
            clock=self._clock,
            settings=self._settings,
        )
        self._processor = BatchProcessor(
            session_factory=session_factory,
            store=self._store,
            reconciler=self._reconciler,
            expander=self._expander,
            side_effects=self._side_effects,
            clock=self._clock,
            settings=self._settings,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session_factory(
        cls,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: ScheduleSettings | None = None,
        **collaborators,
    ) -> ExpenseScheduleOrchestrator:
        """Create a fully wired orchestrator over an existing session factory.

        Args:
            session_factory: Factory opening one session per transaction.
            clock: Optional clock for deterministic testing.
            settings: Optional settings; defaults apply when omitted.
            **collaborators: ``car_stats``, ``service_intervals``,
                ``home_currency``, ``access_policy``.
        """
        return cls(
            session_factory=session_factory,
            clock=clock,
            settings=settings,
            **collaborators,
        )

    @classmethod
    def from_url(
        cls,
        database_url: str,
        clock: Clock | None = None,
        settings: ScheduleSettings | None = None,
        **collaborators,
    ) -> ExpenseScheduleOrchestrator:
        """Initialize the module engine from ``database_url`` and wire over it."""
        init_engine_from_url(database_url)
        logger.info("orchestrator_created")
        return cls.from_session_factory(
            get_session_factory(), clock=clock, settings=settings, **collaborators
        )

    # -------------------------------------------------------------------------
    # Runner
    # -------------------------------------------------------------------------

    def create_runner(
        self,
        tick_interval_seconds: float = 60,
        batch_size: int | None = None,
        max_schedules: int | None = None,
    ) -> ScheduleRunner:
        """Create a ScheduleRunner around the orchestrator's processor.

        Args:
            tick_interval_seconds: Polling interval (default 60s).
        """
        return ScheduleRunner(
            self._processor,
            tick_interval_seconds=tick_interval_seconds,
            batch_size=batch_size,
            max_schedules=max_schedules,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> ScheduleSettings:
        return self._settings

    @property
    def store(self) -> ScheduleStore:
        return self._store

    @property
    def calculator(self) -> RecurrenceCalculator:
        return self._calculator

    @property
    def expander(self) -> RangeExpander:
        return self._expander

    @property
    def reconciler(self) -> ScheduleReconciler:
        return self._reconciler

    @property
    def lifecycle(self) -> ScheduleLifecycleManager:
        return self._lifecycle

    @property
    def processor(self) -> BatchProcessor:
        return self._processor
