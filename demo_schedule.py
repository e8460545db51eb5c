"""
End-to-end walkthrough of the medication tracking pipeline.

This script exercises:
1. Configuration loading
2. Prescription registration with inventory
3. Daily agenda with live dose statuses
4. Logging taken / skipped doses (and a rejected one)
5. Adherence report, weekly trend and refill alerts

Run with: uv run python demo_schedule.py
"""

import asyncio
from datetime import UTC, date, datetime, time, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.memory.store import InMemoryStore
from medtrack.config import configure_logging, get_config, print_config_summary, validate_config
from medtrack.domain.models import Dosage, FrequencySpec, Medication, MedicationForm, Prescription
from medtrack.services.clock import FixedClock
from medtrack.services.tracker import MedicationTracker

console = Console()

PATIENT_ID = "patient-001"

STATUS_STYLE = {
    "taken": "green",
    "skipped": "red",
    "overdue": "orange3",
    "due": "yellow",
    "pending": "blue",
}


def sample_prescriptions() -> list[Prescription]:
    lisinopril = Medication(
        id="med-lisinopril", name="Lisinopril", form=MedicationForm.TABLET, default_strength="10mg"
    )
    metformin = Medication(
        id="med-metformin", name="Metformin", form=MedicationForm.TABLET, default_strength="500mg"
    )
    amoxicillin = Medication(
        id="med-amoxicillin", name="Amoxicillin", form=MedicationForm.CAPSULE
    )
    return [
        Prescription(
            id="rx-lisinopril",
            patient_id=PATIENT_ID,
            medication=lisinopril,
            dosage=Dosage(strength=10, unit="mg"),
            frequency=FrequencySpec.from_preset("once_daily"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
            prescriber="Dr. Rivera",
        ),
        Prescription(
            id="rx-metformin",
            patient_id=PATIENT_ID,
            medication=metformin,
            dosage=Dosage(strength=500, unit="mg"),
            frequency=FrequencySpec.from_preset("twice_daily"),
            start_date=date(2024, 1, 1),
            prescriber="Dr. Rivera",
        ),
        Prescription(
            id="rx-amoxicillin",
            patient_id=PATIENT_ID,
            medication=amoxicillin,
            dosage=Dosage(strength=500, unit="mg"),
            frequency=FrequencySpec.every(8, starting=time(8, 0)),
            start_date=date(2024, 1, 10),
            end_date=date(2024, 1, 19),
            prescriber="Dr. Okafor",
        ),
    ]


async def register(tracker: MedicationTracker) -> None:
    stock = {"rx-lisinopril": 10, "rx-metformin": 60, "rx-amoxicillin": 30}
    for prescription in sample_prescriptions():
        inventory = tracker.new_inventory(prescription.id, stock[prescription.id])
        result = await tracker.register_prescription(prescription, inventory)
        status = "registered" if result.is_ok() else f"rejected: {result.unwrap_err()}"
        console.print(f"  {prescription.medication.name}: {status}")


async def simulate_history(tracker: MedicationTracker, clock: FixedClock) -> None:
    """Log a week of doses with a few skips and misses."""
    for offset in range(7):
        day = date(2024, 1, 8) + timedelta(days=offset)
        agenda = (await tracker.daily_agenda(PATIENT_ID, day)).unwrap()
        for slot in agenda.slots:
            for item in slot.items:
                dose = item.dose
                if offset == 2 and item.medication_name == "Metformin":
                    await tracker.record_skipped(dose.prescription_id, dose.scheduled_at, "nausea")
                elif offset == 4 and slot.local_time == "20:00":
                    continue  # forgot the evening doses
                else:
                    await tracker.record_taken(
                        dose.prescription_id,
                        dose.scheduled_at,
                        taken_at=dose.scheduled_at + timedelta(minutes=10),
                    )
    clock.set(datetime(2024, 1, 15, 8, 10, tzinfo=UTC))


async def show_agenda(tracker: MedicationTracker, day: date) -> None:
    agenda = (await tracker.daily_agenda(PATIENT_ID, day)).unwrap()

    table = Table(title=f"Agenda for {day.isoformat()}")
    table.add_column("Time")
    table.add_column("Medication")
    table.add_column("Dosage")
    table.add_column("Status")

    for slot in agenda.slots:
        for item in slot.items:
            style = STATUS_STYLE[item.status.value]
            table.add_row(
                slot.local_time,
                item.medication_name,
                item.dosage,
                f"[{style}]{item.status.value}[/{style}]",
            )

    console.print(table)
    summary = agenda.summary
    console.print(
        f"Taken {summary.taken}/{summary.total}, skipped {summary.skipped}, "
        f"overdue {summary.overdue}, pending {summary.pending}"
    )


async def show_logging(tracker: MedicationTracker) -> None:
    console.print("\n[bold]Logging doses[/bold]")
    scheduled = datetime(2024, 1, 15, 8, 0, tzinfo=UTC)
    first = await tracker.record_taken("rx-lisinopril", scheduled, notes="with breakfast")
    second = await tracker.record_taken("rx-lisinopril", scheduled, notes="corrected note")
    console.print(f"  first log ok={first.is_ok()}, overwrite ok={second.is_ok()}")

    bad = await tracker.record_taken("rx-lisinopril", datetime(2024, 1, 15, 9, 30, tzinfo=UTC))
    error = bad.unwrap_err()
    message = getattr(error, "user_message", str(error))
    console.print(f"  unscheduled time rejected: [red]{message}[/red]")

    reminders = (await tracker.due_reminders(PATIENT_ID)).unwrap()
    for reminder in reminders:
        console.print(
            f"  reminder: {reminder.medication_name} {reminder.dosage} "
            f"({reminder.status.value}, {reminder.minutes_until:+.0f} min)"
        )


async def show_reports(tracker: MedicationTracker) -> None:
    report = (
        await tracker.adherence_report(PATIENT_ID, date(2024, 1, 8), date(2024, 1, 14))
    ).unwrap()

    table = Table(title="Adherence 2024-01-08 .. 2024-01-14")
    table.add_column("Medication")
    table.add_column("Taken", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Missed", justify="right")
    table.add_column("Scheduled", justify="right")
    table.add_column("Adherence", justify="right")
    for item in report.by_prescription:
        table.add_row(
            item.medication_name,
            str(item.taken_count),
            str(item.skipped_count),
            str(item.overdue_count),
            str(item.total_scheduled),
            f"{item.adherence_ratio:.0%}",
        )
    console.print(table)
    console.print(f"Overall adherence: {report.adherence_percentage:.1f}%")

    trend = (await tracker.weekly_trend(PATIENT_ID, date(2024, 1, 14))).unwrap()
    bars = " ".join(f"{d.day.day:02d}:{d.adherence_ratio:.0%}" for d in trend.daily)
    console.print(f"Weekly trend ({trend.direction}): {bars}")

    alerts = await tracker.low_stock_alerts(PATIENT_ID)
    if not alerts:
        console.print("[green]No refills needed[/green]")
    for alert in alerts:
        depletion = (
            alert.projected_depletion_at.date().isoformat()
            if alert.projected_depletion_at
            else "unknown"
        )
        console.print(
            Panel(
                f"{alert.current_quantity:g} units left, runs out {depletion}",
                title=f"Refill needed: {alert.prescription_id}",
                border_style="red" if alert.is_low_stock else "yellow",
            )
        )


async def main() -> None:
    console.print(Panel.fit("Medication Tracking Demo", style="bold blue"))

    validate_config()
    print_config_summary()
    config = get_config()
    configure_logging(config.logging)

    clock = FixedClock(datetime(2024, 1, 8, 6, 0, tzinfo=UTC))
    tracker = MedicationTracker(InMemoryStore(), clock=clock, config=config)

    console.print("\n[bold]Registering prescriptions[/bold]")
    await register(tracker)

    await simulate_history(tracker, clock)
    await show_agenda(tracker, date(2024, 1, 15))
    await show_logging(tracker)
    await show_reports(tracker)


if __name__ == "__main__":
    asyncio.run(main())
