"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import typer

from periphctl.core.errors import PeriphctlError
from periphctl.core.hid_usage import iter_items, parse_usage
from periphctl.core.markup import transpile
from periphctl.core.model import DeviceIdentity, Role
from periphctl.core.service import PeripheralService, diff_devices

app = typer.Typer(help="Classify USB POS peripherals and drive receipt printers")

_ITEM_TYPES = {0: "Main", 1: "Global", 2: "Local", 3: "Reserved"}


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _build_service() -> PeripheralService:
    service = PeripheralService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _describe(device: DeviceIdentity) -> str:
    return f"{device.device_id} {device.vendor_id:04x}:{device.product_id:04x} {device.display_name}"


def _read_markup(text: str | None, file: Path | None) -> str:
    if file is not None:
        try:
            return file.read_text(encoding="utf-8")
        except OSError as exc:
            raise typer.BadParameter(f"Could not read {file}: {exc}") from exc
    if text is None:
        raise typer.BadParameter("Provide TEXT or --file")
    return text


@app.command("roles")
def list_roles() -> None:
    """List loaded role tables."""
    try:
        service = _build_service()
        for rules in service.list_roles():
            typer.echo(f"{rules.role.value}: {rules.name}")
            typer.echo(f"  allow: {len(rules.allow_vendors)} vendors, deny: {len(rules.deny_vendors)} vendors")
    except PeriphctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(
    no_descriptor: bool = typer.Option(
        False, "--no-descriptor", help="Skip HID descriptor reads (static identity only)"
    ),
) -> None:
    """List attached USB devices and their identified role."""
    try:
        service = _build_service()
        devices = service.list_devices()
        if not devices:
            typer.echo("No USB devices found")
            return

        for device in devices:
            result = service.identify(device, read_descriptor=not no_descriptor)
            confidence = f" ({result.confidence.value})" if result.confidence else ""
            layout = ""
            if result.role is Role.KEYBOARD:
                kind = device.keyboard_type
                layout = f" [{kind.value}, {kind.key_count} keys]"
            typer.echo(f"{_describe(device)} -> {result.role.value}{confidence}{layout}")
    except PeriphctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("classify")
def classify_device(
    device: str = typer.Argument(..., help="bus:address, vid:pid, or part of the product name"),
    role: Role | None = typer.Option(None, "--role", help="Only evaluate this role"),
) -> None:
    """Show every role decision for one device, with the deciding rule."""
    try:
        service = _build_service()
        identity = service.resolve_device(device)
        usage = service.read_usage(identity)
        usage_desc = f"0x{usage.usage_page:02x}:0x{usage.usage:02x}" if usage else "unavailable"
        typer.echo(f"Device: {_describe(identity)}")
        typer.echo(f"Vendor: {identity.manufacturer_name or 'unknown'}")
        typer.echo(f"Usage: {usage_desc}")

        if role is not None:
            decisions = {role: service.classify(identity, role, usage)}
        else:
            decisions = service.classify_all(identity, usage)
        for evaluated, decision in decisions.items():
            verdict = "match" if decision.is_match else "no"
            confidence = f" {decision.confidence.value}" if decision.confidence else ""
            typer.echo(f"  {evaluated.value}: {verdict}{confidence} [{decision.rule}]")
    except PeriphctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("descriptor")
def dump_descriptor(
    device: str = typer.Argument(..., help="bus:address, vid:pid, or part of the product name"),
) -> None:
    """Dump the HID Report Descriptor of a device."""
    try:
        service = _build_service()
        identity = service.resolve_device(device)
        found = service.read_descriptor(identity)
        if found is None:
            typer.echo(f"No readable HID Report Descriptor on {identity.device_id}")
            raise typer.Exit(code=1)

        interface_number, descriptor = found
        typer.echo(f"Interface {interface_number}: {len(descriptor)} bytes")
        typer.echo(descriptor.hex(" "))
        for item_type, tag, length, value in iter_items(descriptor):
            typer.echo(f"  {_ITEM_TYPES[item_type]:<8} tag={tag:<2} size={length} value=0x{value:x}")
        usage = parse_usage(descriptor)
        if usage is not None:
            typer.echo(f"Usage: 0x{usage.usage_page:02x}:0x{usage.usage:02x}")
    except PeriphctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("transpile")
def transpile_markup(
    text: str | None = typer.Argument(None, help="Markup text"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read markup from a UTF-8 file"),
    raw: bool = typer.Option(False, "--raw", help="Write raw ESC/POS bytes to stdout"),
) -> None:
    """Translate receipt markup into ESC/POS bytes."""
    payload = transpile(_read_markup(text, file))
    if raw:
        stream = typer.get_binary_stream("stdout")
        stream.write(payload)
        stream.flush()
        return
    typer.echo(payload.hex(" "))


@app.command("print")
def print_markup(
    device: str = typer.Argument(..., help="bus:address, vid:pid, or part of the product name"),
    text: str | None = typer.Argument(None, help="Markup text"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Read markup from a UTF-8 file"),
    timeout: float = typer.Option(5.0, "--timeout", help="Bulk write timeout in seconds"),
) -> None:
    """Transpile markup and send it to a printer."""
    markup = _read_markup(text, file)
    try:
        service = _build_service()
        identity = service.resolve_device(device)
        result = service.print_markup(identity, markup, timeout_s=timeout)
        typer.echo(f"Sent {result.bytes_sent}/{result.payload_size} bytes to {identity.device_id}")
    except PeriphctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("watch")
def watch_devices(
    interval: float = typer.Option(1.0, "--interval", help="Polling interval in seconds"),
    iterations: int = typer.Option(0, "--iterations", help="Stop after N polls (0 = run until interrupted)"),
) -> None:
    """Report USB attach/detach events with the identified role."""
    try:
        service = _build_service()
        previous = service.list_devices()
        polls = 0
        while iterations == 0 or polls < iterations:
            time.sleep(interval)
            current = service.list_devices()
            changes = diff_devices(previous, current)
            for device in changes.attached:
                result = service.identify(device)
                typer.echo(f"+ {_describe(device)} -> {result.role.value}")
            for device in changes.detached:
                typer.echo(f"- {_describe(device)}")
            previous = current
            polls += 1
    except PeriphctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=0) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
