"""
Main CLI application using Typer.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.api_store import ApiAppointmentStore
from ..adapters.memory_store import InMemoryAppointmentStore
from ..config import AppConfig, get_default_config_path
from ..domain.clock import Clock, FixedClock, SystemClock, parse_date
from ..domain.exceptions import InvalidDate, SchedulingError
from ..domain.models import BookingRequest, SlotBucket
from ..services.availability import AvailabilityService
from ..services.booking import BookingOrchestrator

app = typer.Typer(
    name="serviceslots",
    help="Check service appointment slots and capacity",
    add_completion=False
)

console = Console()

BUCKET_STYLES = {
    SlotBucket.AVAILABLE: "[green]available[/green]",
    SlotBucket.LIMITED: "[yellow]limited[/yellow]",
    SlotBucket.FULLY_BOOKED: "[red]fully booked[/red]",
}

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="JSON data file for the in-memory store (overrides config).")]
NowOption = Annotated[Optional[str], typer.Option("--now", help="Pin the current time (ISO 8601), e.g. for replays.")]
VerboseOption = Annotated[bool, typer.Option("--verbose", help="Show debug logging.")]
JsonOption = Annotated[bool, typer.Option("--json", help="Print machine-readable JSON.")]
DurationOption = Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")]
VehiclesOption = Annotated[int, typer.Option("--vehicles", "-v", help="Number of vehicles booked together")]


def _configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_clock(config: AppConfig, now: Optional[str]) -> Clock:
    if not now:
        return SystemClock(config.timezone)
    try:
        instant = pendulum.parse(now, tz=config.timezone)
    except ValueError as e:
        raise InvalidDate(f"--now must be an ISO 8601 datetime, got '{now}'") from e
    return FixedClock(instant, timezone=config.timezone)


def _build_services(
    config_file: Optional[Path],
    data_file: Optional[Path],
    now: Optional[str],
    verbose: bool,
) -> Tuple[AppConfig, AvailabilityService, BookingOrchestrator]:
    """
    Load configuration and wire store, clock and services together.
    """
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _configure_logging(config.log_level, verbose)

    if config.store.backend == "api" and data_file is None:
        store = ApiAppointmentStore(
            base_url=config.store.base_url,
            timezone=config.timezone,
            timeout=config.store.timeout,
        )
    else:
        source = data_file or config.store.data_file
        if source:
            store = InMemoryAppointmentStore.from_json(source, config.timezone)
        else:
            store = InMemoryAppointmentStore()

    availability = AvailabilityService(
        calendar=config.business_calendar(),
        store=store,
        clock=_build_clock(config, now),
        default_time=config.defaults.appointment_time,
        default_duration=config.defaults.appointment_duration,
        limited_slots_threshold=config.defaults.limited_slots_threshold,
    )
    orchestrator = BookingOrchestrator(
        availability,
        vehicles=store,
        services=store,
        appointments=store,
        serialize=config.serialize_bookings,
    )
    return config, availability, orchestrator


def _resolve_date(value: str, availability: AvailabilityService):
    """Accept YYYY-MM-DD, 'today' or 'tomorrow'."""
    shortcut = value.strip().lower()
    if shortcut == "today":
        return availability.today()
    if shortcut == "tomorrow":
        return availability.today().add(days=1)
    return parse_date(value)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


@app.command()
def slots(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD, 'today' or 'tomorrow')")],
    duration: DurationOption = None,
    vehicles: VehiclesOption = 1,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
):
    """
    Show the booking grid for one date.

    Examples:

        serviceslots slots 2026-10-20
        serviceslots slots tomorrow --duration 90 --vehicles 2
    """
    try:
        config, availability, _ = _build_services(config_file, data_file, now, verbose)
        day = _resolve_date(date, availability)
        service_duration = duration if duration is not None else config.defaults.service_duration
        grid = availability.get_day_slots(day, service_duration, vehicles)
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps({
            "date": grid.date.isoformat(),
            "message": grid.message,
            "slots": [slot.to_dict() for slot in grid.slots],
            "available": [slot.start_time for slot in grid.available],
            "limited": [slot.start_time for slot in grid.limited],
            "fullyBooked": [slot.start_time for slot in grid.fully_booked],
        }, indent=2))
        return

    if not grid.slots:
        console.print(f"[yellow]⚠ {grid.message}[/yellow]")
        return

    table = Table(
        title=f"Slots on {grid.date.isoformat()}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Free", justify="right")
    table.add_column("Status")

    for slot in grid.slots:
        table.add_row(
            slot.display_time,
            slot.display_end_time,
            f"{slot.capacity_remaining}/{slot.capacity_total}",
            BUCKET_STYLES[slot.bucket],
        )

    console.print()
    console.print(table)
    if grid.message:
        console.print(f"[yellow]⚠ {grid.message}[/yellow]")
    console.print()


@app.command()
def dates(
    duration: DurationOption = None,
    vehicles: VehiclesOption = 1,
    days: Annotated[Optional[int], typer.Option("--days", help="Horizon in days. Defaults to the booking window.")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
):
    """
    List open dates in the booking window with their free slot counts.
    """
    try:
        config, availability, _ = _build_services(config_file, data_file, now, verbose)
        service_duration = duration if duration is not None else config.defaults.service_duration
        available_dates = availability.get_available_dates(service_duration, vehicles, days)
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps({"availableDates": [d.to_dict() for d in available_dates]}, indent=2))
        return

    if not available_dates:
        console.print("[yellow]⚠ No open dates in the booking window.[/yellow]")
        return

    table = Table(title="Available dates", show_header=True, header_style="bold cyan")
    table.add_column("Date", style="bold")
    table.add_column("Free slots", justify="right")
    table.add_column("Status")

    for entry in available_dates:
        if entry.is_fully_booked:
            status = "[red]fully booked[/red]"
        elif entry.is_limited:
            status = "[yellow]limited[/yellow]"
        else:
            status = "[green]available[/green]"
        table.add_row(
            entry.date.strftime("%a %Y-%m-%d"),
            f"{entry.available_slots}/{entry.total_slots}",
            status,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def check(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD, 'today' or 'tomorrow')")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM, 24-hour)")],
    duration: DurationOption = None,
    vehicles: VehiclesOption = 1,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
):
    """
    Check whether one specific date and time can be booked.
    """
    try:
        config, availability, _ = _build_services(config_file, data_file, now, verbose)
        day = _resolve_date(date, availability)
        service_duration = duration if duration is not None else config.defaults.service_duration
        result = availability.check_slot(day, time, service_duration, vehicles)
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps({
            "isBookable": result.is_bookable,
            "validation": result.validation.to_dict(),
            "capacity": result.capacity.to_dict() if result.capacity else None,
        }, indent=2))
        return

    lines = []
    if result.is_bookable:
        lines.append("[bold green]✓ Bookable[/bold green]")
    else:
        lines.append("[bold red]✗ Not bookable[/bold red]")
    for error in result.validation.errors:
        lines.append(f"  • {error}")
    if result.capacity:
        capacity = result.capacity
        lines.append(
            f"\n[bold]Capacity:[/bold] {capacity.capacity_remaining} of "
            f"{capacity.capacity_total} free ({capacity.capacity_used} booked)"
        )

    console.print(Panel.fit("\n".join(lines), title=f"{day.isoformat()} {time}"))


@app.command()
def validate(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD, 'today' or 'tomorrow')")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM, 24-hour)")],
    duration: DurationOption = None,
    customer: Annotated[Optional[str], typer.Option("--customer", help="Customer id")] = None,
    vehicle: Annotated[Optional[List[str]], typer.Option("--vehicle", help="Vehicle id (repeatable)")] = None,
    service: Annotated[Optional[List[str]], typer.Option("--service", help="Service id (repeatable)")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
):
    """
    Run the full booking validation a booking request goes through.

    Exits with code 1 when the booking would be rejected.
    """
    try:
        config, availability, orchestrator = _build_services(config_file, data_file, now, verbose)
        day = _resolve_date(date, availability)
        base = duration if duration is not None else config.defaults.service_duration
        vehicle_ids = list(vehicle) if vehicle else None
        request = BookingRequest(
            appointment_date=day,
            appointment_time=time,
            duration=availability.scale_duration(base, len(vehicle_ids or [])),
            customer_id=customer,
            vehicle_ids=vehicle_ids,
            service_ids=list(service) if service else None,
        )
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    result = orchestrator.validate_booking(request)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        if result.is_valid:
            console.print("[bold green]✓ Booking can be accepted[/bold green]")
        else:
            console.print("[bold red]✗ Booking would be rejected[/bold red]")
        for error in result.errors:
            console.print(f"  [red]•[/red] {error}")
        for warning in result.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")

    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def cancel_quote(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
):
    """
    Show whether an appointment can be cancelled now, and the fee.

    Exits with code 1 when cancellation is not allowed.
    """
    try:
        _, _, orchestrator = _build_services(config_file, data_file, now, verbose)
        quote = orchestrator.cancellation_quote(appointment_id)
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps({"appointmentId": appointment_id, **quote.to_dict()}, indent=2))
    elif quote.allowed:
        fee = "free" if quote.fee_percentage == 0 else f"{quote.fee_percentage}% fee"
        console.print(Panel.fit(
            f"[bold green]✓ Can be cancelled[/bold green] ({fee})\n"
            f"Starts in {quote.hours_until:.1f} h",
            title=appointment_id,
        ))
    else:
        console.print(Panel.fit(f"[bold red]✗ {quote.reason}[/bold red]", title=appointment_id))

    if not quote.allowed:
        raise typer.Exit(1)


@app.command()
def can_modify(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now: NowOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
):
    """
    Show whether an appointment can still be rescheduled.

    Exits with code 1 when it cannot.
    """
    try:
        _, _, orchestrator = _build_services(config_file, data_file, now, verbose)
        result = orchestrator.check_modification(appointment_id)
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps({"appointmentId": appointment_id, **result.to_dict()}, indent=2))
    else:
        if result.is_valid:
            console.print("[bold green]✓ Appointment can be rescheduled[/bold green]")
        else:
            console.print("[bold red]✗ Appointment cannot be rescheduled[/bold red]")
        for error in result.errors:
            console.print(f"  [red]•[/red] {error}")

    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def show_config(
    config_file: ConfigOption = None,
):
    """
    Show the business calendar in effect.
    """
    try:
        config_path = config_file or get_default_config_path()
        config = AppConfig.load_from_yaml(config_path)
    except (SchedulingError, FileNotFoundError) as e:
        _fail(str(e))

    calendar = config.calendar
    weekday_names = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

    table = Table(title="Business calendar", show_header=False)
    table.add_column("Setting", style="bold yellow")
    table.add_column("Value")

    table.add_row("Time zone", config.timezone)
    table.add_row("Operating days", ", ".join(weekday_names[d] for d in sorted(calendar.operating_days)))
    table.add_row("Hours", f"{calendar.operating_hours.start} - {calendar.operating_hours.end}")
    if calendar.lunch_break.enabled:
        table.add_row("Lunch break", f"{calendar.lunch_break.start} - {calendar.lunch_break.end}")
    else:
        table.add_row("Lunch break", "none")
    table.add_row("Slot grid", f"{calendar.slot_duration} min")
    table.add_row("Capacity per slot", str(calendar.max_concurrent_appointments))
    table.add_row("Booking window", f"{calendar.advance_booking_days} days")
    table.add_row("Minimum notice", f"{calendar.minimum_notice_hours} h")
    table.add_row("Multi-vehicle", calendar.multi_vehicle_strategy.value)
    table.add_row("Blocked dates", ", ".join(d.isoformat() for d in calendar.blocked_dates) or "none")

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]serviceslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
