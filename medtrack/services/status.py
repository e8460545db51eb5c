"""Dose status classification."""

from datetime import datetime, timedelta

from medtrack.domain.models import Disposition, DoseLogEntry, DoseStatus, ScheduledDose
from medtrack.services.clock import Clock

DEFAULT_DUE_WINDOW = timedelta(minutes=30)
DEFAULT_OVERDUE_GRACE = timedelta(minutes=30)


def classify(
    dose: ScheduledDose,
    entry: DoseLogEntry | None,
    now: datetime,
    due_window: timedelta = DEFAULT_DUE_WINDOW,
    overdue_grace: timedelta = DEFAULT_OVERDUE_GRACE,
) -> DoseStatus:
    """
    Map a scheduled dose to its status at `now`.

    Precedence: taken, skipped, overdue, due, pending. A recorded disposition
    wins regardless of `now`. A dose stays due for `overdue_grace` after its
    time before turning overdue; a zero grace makes any late dose overdue.
    """
    if entry is not None:
        if entry.disposition == Disposition.TAKEN:
            return DoseStatus.TAKEN
        if entry.disposition == Disposition.SKIPPED:
            return DoseStatus.SKIPPED

    if now > dose.scheduled_at + overdue_grace:
        return DoseStatus.OVERDUE
    if dose.scheduled_at - now <= due_window:
        return DoseStatus.DUE
    return DoseStatus.PENDING


class StatusClassifier:
    """classify() bound to a clock and the configured windows."""

    def __init__(
        self,
        clock: Clock,
        due_window: timedelta = DEFAULT_DUE_WINDOW,
        overdue_grace: timedelta = DEFAULT_OVERDUE_GRACE,
    ) -> None:
        if due_window < timedelta(0) or overdue_grace < timedelta(0):
            raise ValueError("due_window and overdue_grace must not be negative")
        self.clock = clock
        self.due_window = due_window
        self.overdue_grace = overdue_grace

    def classify(
        self, dose: ScheduledDose, entry: DoseLogEntry | None, now: datetime | None = None
    ) -> DoseStatus:
        return classify(
            dose, entry, now or self.clock.now(), self.due_window, self.overdue_grace
        )
