"""
Main CLI application using Typer.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Annotated, Iterator, Optional

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.catalog import ConfigBusinessDirectory
from ..adapters.json_store import JsonAppointmentStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import TurnsError
from ..domain.models import WEEKDAY_NAMES, Appointment, AppointmentStatus
from ..services.booking import BookingService
from ..services.schedules import ScheduleService
from ..services.slot_availability import SlotAvailabilityEngine

app = typer.Typer(
    name="turns",
    help="Consultar turnos disponibles y gestionar reservas",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]

STATUS_LABELS = {
    AppointmentStatus.PENDING: "[yellow]Pendiente[/yellow]",
    AppointmentStatus.CONFIRMED: "[green]Confirmado[/green]",
    AppointmentStatus.CANCELLED: "[dim]Cancelado[/dim]",
    AppointmentStatus.COMPLETED: "[cyan]Completado[/cyan]",
    AppointmentStatus.NO_SHOW: "[red]Ausente[/red]",
}


@dataclass
class Runtime:
    """Everything a command needs, wired from one config file."""
    config: AppConfig
    directory: ConfigBusinessDirectory
    engine: SlotAvailabilityEngine
    booking: BookingService
    schedules: ScheduleService


def _load_runtime(config_file: Optional[Path]) -> Runtime:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)

    directory = ConfigBusinessDirectory(config)
    store = JsonAppointmentStore(config.resolve_data_file(config_path))
    engine = SlotAvailabilityEngine(directory=directory, appointment_store=store)

    return Runtime(
        config=config,
        directory=directory,
        engine=engine,
        booking=BookingService(engine=engine, directory=directory, appointment_store=store),
        schedules=ScheduleService(repository=directory),
    )


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

    package_logger = logging.getLogger("turns")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Print user-facing errors and exit with status 1."""
    try:
        yield
    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except (TurnsError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_day(value: Optional[str], runtime: Runtime, business_id: str) -> date:
    tz = runtime.directory.get_business(business_id).timezone
    if not value:
        return runtime.engine.now(tz).date()
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Error al interpretar la fecha: {e}[/red]")
        raise typer.Exit(1)


def _parse_start(value: str, tz: str) -> DateTime:
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as e:
        console.print(f"[red]Error al interpretar el horario: {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(parsed, DateTime):
        console.print(f"[red]Indique fecha y hora, por ejemplo 2025-11-10 10:00 (recibido: {value})[/red]")
        raise typer.Exit(1)
    return parsed


def _print_appointment(appointment: Appointment, title: str) -> None:
    console.print(Panel.fit(
        f"[bold]Turno:[/bold] {appointment.id}\n"
        f"[bold]Cliente:[/bold] {appointment.customer}\n"
        f"[bold]Servicio:[/bold] {appointment.service_id}\n"
        f"[bold]Horario:[/bold] {appointment.time_range}\n"
        f"[bold]Estado:[/bold] {STATUS_LABELS[appointment.status]}",
        title=title
    ))


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Turns - find free slots and manage bookings for service businesses.
    """
    _configure_logging(verbose)


@app.command()
def slots(
    business_id: Annotated[str, typer.Argument(help="Business id")],
    service_id: Annotated[str, typer.Argument(help="Service id")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD). Defaults to today.")] = None,
    only_available: Annotated[bool, typer.Option("--available", help="Mostrar solo horarios libres.")] = False,
    config_file: ConfigOption = None,
):
    """
    Show the slots of a service on one day.

    Examples:

        turns slots barberia-centro corte
        turns slots barberia-centro corte --date 2025-11-10 --available
    """
    with _cli_errors():
        runtime = _load_runtime(config_file)
        business = runtime.directory.get_business(business_id)
        requested_day = _parse_day(day, runtime, business_id)

        slot_list = runtime.engine.compute_available_slots(
            business_id=business.id,
            service_id=service_id,
            day=requested_day,
        )

        if not slot_list:
            console.print(
                f"[yellow]⚠ {business.name} no atiende el "
                f"{requested_day.strftime('%d/%m/%Y')}.[/yellow]"
            )
            return

        table = Table(
            title=f"{business.name} - {WEEKDAY_NAMES[requested_day.isoweekday() % 7]} "
                  f"{requested_day.strftime('%d/%m/%Y')}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Horario", style="bold")
        table.add_column("Estado")

        shown = 0
        for slot in slot_list:
            if only_available and not slot.available:
                continue
            shown += 1
            table.add_row(
                f"{slot.start_time.format('HH:mm')} - {slot.end_time.format('HH:mm')}",
                "[green]Disponible[/green]" if slot.available else "[dim]Ocupado[/dim]",
            )

        console.print()
        console.print(table)
        available = sum(1 for slot in slot_list if slot.available)
        console.print(f"\n[bold green]✓ {available} de {len(slot_list)} horario(s) disponibles[/bold green]\n")
        if only_available and not shown:
            console.print("[yellow]No quedan horarios libres ese día.[/yellow]")


@app.command()
def book(
    business_id: Annotated[str, typer.Argument(help="Business id")],
    service_id: Annotated[str, typer.Argument(help="Service id")],
    start: Annotated[str, typer.Argument(help="Start, e.g. '2025-11-10 10:00'")],
    customer: Annotated[str, typer.Option("--customer", help="Nombre o email del cliente")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notas para el turno")] = None,
    config_file: ConfigOption = None,
):
    """
    Book a slot. The end time follows from the service duration.
    """
    with _cli_errors():
        runtime = _load_runtime(config_file)
        business = runtime.directory.get_business(business_id)
        appointment = runtime.booking.create_appointment(
            business_id=business.id,
            service_id=service_id,
            start_time=_parse_start(start, business.timezone),
            customer=customer,
            notes=notes,
        )
        _print_appointment(appointment, "✓ Turno reservado")


@app.command()
def reschedule(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    start: Annotated[str, typer.Argument(help="New start, e.g. '2025-11-10 11:00'")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notas para el turno")] = None,
    config_file: ConfigOption = None,
):
    """
    Move an appointment to another slot (it becomes pending again).
    """
    with _cli_errors():
        runtime = _load_runtime(config_file)
        current = runtime.booking.get_appointment(appointment_id)
        business = runtime.directory.get_business(current.business_id)
        appointment = runtime.booking.reschedule_appointment(
            appointment_id,
            _parse_start(start, business.timezone),
            notes=notes,
        )
        _print_appointment(appointment, "✓ Turno reprogramado")


@app.command()
def confirm(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """Confirm a pending appointment."""
    with _cli_errors():
        runtime = _load_runtime(config_file)
        _print_appointment(runtime.booking.confirm_appointment(appointment_id), "✓ Turno confirmado")


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """Cancel an appointment and release its slot."""
    with _cli_errors():
        runtime = _load_runtime(config_file)
        _print_appointment(runtime.booking.cancel_appointment(appointment_id), "✓ Turno cancelado")


@app.command()
def complete(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """Mark a confirmed appointment as completed."""
    with _cli_errors():
        runtime = _load_runtime(config_file)
        _print_appointment(runtime.booking.complete_appointment(appointment_id), "✓ Turno completado")


@app.command("no-show")
def no_show(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """Mark a confirmed appointment as a no-show."""
    with _cli_errors():
        runtime = _load_runtime(config_file)
        _print_appointment(runtime.booking.mark_no_show(appointment_id), "Turno marcado como ausente")


@app.command()
def appointments(
    business_id: Annotated[str, typer.Argument(help="Business id")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Only this date (YYYY-MM-DD)")] = None,
    status: Annotated[Optional[str], typer.Option("--status", "-s", help="PENDING, CONFIRMED, CANCELLED, COMPLETED or NO_SHOW")] = None,
    config_file: ConfigOption = None,
):
    """
    List the appointments of a business.
    """
    with _cli_errors():
        runtime = _load_runtime(config_file)
        status_filter = AppointmentStatus(status.upper()) if status else None
        requested_day = _parse_day(day, runtime, business_id) if day else None

        items = runtime.booking.list_appointments(
            business_id,
            day=requested_day,
            status=status_filter,
        )

        if not items:
            console.print("[yellow]No hay turnos para ese filtro.[/yellow]")
            return

        table = Table(title="Turnos", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Horario", style="bold")
        table.add_column("Servicio")
        table.add_column("Cliente", style="bold yellow")
        table.add_column("Estado")

        for item in items:
            table.add_row(
                item.id,
                str(item.time_range),
                item.service_id,
                item.customer,
                STATUS_LABELS[item.status],
            )

        console.print()
        console.print(table)
        console.print()


@app.command()
def schedules(
    business_id: Annotated[str, typer.Argument(help="Business id")],
    config_file: ConfigOption = None,
):
    """
    Show the weekly opening hours of a business.
    """
    with _cli_errors():
        runtime = _load_runtime(config_file)
        business = runtime.directory.get_business(business_id)
        rows = runtime.schedules.list_schedules(business.id)

        if not rows:
            console.print(f"[yellow]{business.name} no tiene horarios configurados.[/yellow]")
            return

        table = Table(
            title=f"Horarios de {business.name} ({business.timezone})",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Día", style="bold yellow")
        table.add_column("Horario")
        table.add_column("Activo")

        for row in rows:
            table.add_row(
                WEEKDAY_NAMES[row.day_of_week],
                row.format_hours(),
                "Sí" if row.is_active else "No",
            )

        console.print()
        console.print(table)
        console.print()


@app.command()
def businesses(
    config_file: ConfigOption = None,
):
    """
    List all configured businesses and their services.
    """
    with _cli_errors():
        runtime = _load_runtime(config_file)
        business_list = runtime.directory.list_businesses()

        if not business_list:
            console.print("[yellow]No hay negocios definidos en el archivo de configuración.[/yellow]")
            return

        table = Table(
            title="Negocios configurados",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="bold yellow")
        table.add_column("Nombre")
        table.add_column("Servicios", style="dim")

        for business in business_list:
            if not business.is_active:
                continue
            services = ", ".join(
                f"{s.id} ({s.duration_minutes} min)"
                for s in runtime.directory.list_services(business.id)
                if s.is_active
            )
            table.add_row(business.id, business.name, services)

        console.print()
        console.print(table)
        console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]turns[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
