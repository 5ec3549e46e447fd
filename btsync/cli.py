"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import typer

from btsync.core.errors import BtsyncError
from btsync.core.model import Device
from btsync.core.service import BluetoothService

app = typer.Typer(help="Bluetooth adapters, devices, and pairing over BlueZ")

Action = Callable[[BluetoothService], Awaitable[None]]


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> BluetoothService:
    service = BluetoothService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


async def _with_service(service: BluetoothService, action: Action, *, run_agent: bool) -> None:
    try:
        await service.start(run_agent=run_agent, updates=False)
        await action(service)
    finally:
        await service.stop()


def _run(action: Action, *, run_agent: bool = False) -> None:
    try:
        service = _build_service()
        asyncio.run(_with_service(service, action, run_agent=run_agent))
    except BtsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def _flags(device: Device) -> str:
    flags = [
        name
        for name, key in (("paired", "Paired"), ("connected", "Connected"), ("trusted", "Trusted"), ("blocked", "Blocked"))
        if device.properties.get(key)
    ]
    return f" [{' '.join(flags)}]" if flags else ""


def _on_off(value: bool) -> str:
    return "on" if value else "off"


@app.command("adapters")
def list_adapters() -> None:
    """List adapters and their power/visibility state."""

    async def action(service: BluetoothService) -> None:
        names = await service.registry.adapter_names()
        if not names:
            typer.echo("No Bluetooth adapters found")
            return
        for name in names:
            status = await service.adapter_status(name)
            typer.echo(
                f"{status.name}: powered={_on_off(status.powered)} "
                f"discoverable={_on_off(status.discoverable)} pairable={_on_off(status.pairable)} "
                f"discovering={_on_off(status.discovering)}"
            )

    _run(action)


@app.command("devices")
def list_devices() -> None:
    """List devices known to the daemon."""

    async def action(service: BluetoothService) -> None:
        devices = service.list_devices()
        if not devices:
            typer.echo("No Bluetooth devices found")
            return
        for device in devices:
            typer.echo(f"{device.address} {device.alias}{_flags(device)}")

    _run(action)


@app.command("info")
def show_info(device: str = typer.Argument(..., help="Address or partial alias")) -> None:
    """Show a device's properties and plugin details."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        # Plugins attach on the first sweep; let them fetch their details.
        await service.registry.settle()
        for label, text in service.describe(target):
            typer.echo(f"{label:<10} {text}")

    _run(action)


@app.command("connect")
def connect(
    device: str = typer.Argument(..., help="Address or partial alias"),
    profile: str | None = typer.Option(None, "--profile", help="Profile UUID to connect"),
) -> None:
    """Connect a device, or one of its profiles."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        if profile:
            await service.connect_profile(target, profile)
        else:
            await service.connect(target)
        typer.echo(f"Connected {target.alias}")

    _run(action)


@app.command("disconnect")
def disconnect(
    device: str = typer.Argument(..., help="Address or partial alias"),
    profile: str | None = typer.Option(None, "--profile", help="Profile UUID to disconnect"),
) -> None:
    """Disconnect a device, or one of its profiles."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        if profile:
            await service.disconnect_profile(target, profile)
        else:
            await service.disconnect(target)
        typer.echo(f"Disconnected {target.alias}")

    _run(action)


@app.command("pair")
def pair(device: str = typer.Argument(..., help="Address or partial alias")) -> None:
    """Pair with a device, answering challenges with the built-in agent."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        await service.pair(target)
        typer.echo(f"Paired with {target.alias}")

    _run(action, run_agent=True)


@app.command("remove")
def remove(device: str = typer.Argument(..., help="Address or partial alias")) -> None:
    """Remove a device from the adapter."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        await service.remove_device(target)
        typer.echo(f"Removed {target.alias}")

    _run(action)


@app.command("trust")
def trust(device: str = typer.Argument(..., help="Address or partial alias")) -> None:
    """Toggle whether a device is trusted."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        value = await service.toggle_trusted(target)
        typer.echo(f"{target.alias}: trusted={_on_off(value)}")

    _run(action)


@app.command("block")
def block(device: str = typer.Argument(..., help="Address or partial alias")) -> None:
    """Toggle whether a device is blocked."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        value = await service.toggle_blocked(target)
        typer.echo(f"{target.alias}: blocked={_on_off(value)}")

    _run(action)


@app.command("alias")
def alias(
    device: str = typer.Argument(..., help="Address or partial alias"),
    name: str = typer.Argument(..., help="New alias"),
) -> None:
    """Set a device's alias."""

    async def action(service: BluetoothService) -> None:
        target = service.find_device(device)
        await service.set_alias(target, name)
        typer.echo(f"{target.address} is now '{name}'")

    _run(action)


def _adapter_toggle(label: str, toggle: Callable[[BluetoothService], Awaitable[bool]]) -> None:
    async def action(service: BluetoothService) -> None:
        value = await toggle(service)
        typer.echo(f"{label}: {_on_off(value)}")

    _run(action)


@app.command("power")
def power() -> None:
    """Toggle adapter power."""
    _adapter_toggle("powered", lambda service: service.toggle_powered())


@app.command("discoverable")
def discoverable() -> None:
    """Toggle adapter discoverability."""
    _adapter_toggle("discoverable", lambda service: service.toggle_discoverable())


@app.command("pairable")
def pairable() -> None:
    """Toggle whether the adapter accepts pairing."""
    _adapter_toggle("pairable", lambda service: service.toggle_pairable())


@app.command("scan")
def scan(duration: float = typer.Option(10.0, "--duration", help="Seconds to scan")) -> None:
    """Discover nearby devices for a while and list them."""

    async def action(service: BluetoothService) -> None:
        await service.start_discovery()
        try:
            await asyncio.sleep(duration)
            await service.registry.update_all()
        finally:
            await service.stop_discovery()
        for device in service.list_devices():
            typer.echo(f"{device.address} {device.alias}{_flags(device)}")

    _run(action)


@app.command("agent")
def agent() -> None:
    """Run the pairing agent and follow device changes until interrupted."""

    def on_change(device: Device) -> None:
        typer.echo(f"{device.address} {device.alias}{_flags(device)}")

    async def run_agent(service: BluetoothService) -> None:
        # Set before the first sweep so paired devices report through it.
        service.on_change = on_change
        try:
            await service.start(updates=True)
            typer.echo(await service.status_line())
            await asyncio.Event().wait()
        finally:
            await service.stop()

    try:
        service = _build_service()
        asyncio.run(run_agent(service))
    except BtsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Stopped", err=True)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
