"""
expense_schedules -- Recurring vehicle expense schedules.

A schedule describes a repeating expense (weekly, monthly, yearly, or a
single date) for one car.  The batch processor materializes each due
occurrence as a concrete expense record; the lifecycle manager serves
create / update / pause / resume / run-now requests.

Architecture:
    expense_schedules/ is a top-level package built on expense_kernel.
    Nothing in expense_kernel imports from expense_schedules except the
    ORM registry hook used to create tables.

Invariants:
    - At most one live generated expense per (schedule, calendar day)
    - ``last_added_at`` never moves backward
    - Resume never backfills the paused period
    - Concurrent processors claim disjoint schedules
    - Clock injection (no datetime.now() calls)
    - Side-effect failures never fail the run
"""
