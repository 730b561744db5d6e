"""Command line entry points: ``python -m pressurefield <command>``."""

import threading
import time

import click

from pressurefield.utils._logger import get_logger, set_level

logger = get_logger(__name__)


@click.group()
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def cli(log_level):
    """pressurefield: squeeze-to-match compression experiment."""
    set_level(log_level.upper())


@cli.command()
@click.option("--config", "config_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Experiment configuration file (JSON, YAML or TOML).")
@click.option("--subject", default=None, help="Override the subject id.")
@click.option("--session", default=None, help="Override the session id.")
@click.option("--simulate", is_flag=True, help="Use the simulated sensor instead of UDP input.")
@click.option("--fps", default=60.0, show_default=True, help="Frame rate of the headless update loop.")
def launch(config_path, subject, session, simulate, fps):
    """Run a session headless: each Enter press advances the experiment."""
    from pressurefield.base import create_procedure
    from pressurefield.config import ExperimentConfig
    from pressurefield.hardware import HardwareManager
    from pressurefield.protocols.controller import ExperimentState

    overrides = {key: value for key, value in (("subject", subject), ("session", session)) if value}
    config = ExperimentConfig.from_file(config_path, overrides)
    if simulate:
        sensor = dict(config.hardware.sensor_params, type="simulated")
        config.hardware = HardwareManager(params={"sensor": sensor, "telemetry": config.hardware.telemetry_params})

    procedure = create_procedure(config=config)
    log_path = procedure.initialize()
    click.echo(f"Recording to {log_path}")

    stop = threading.Event()
    frame_lock = threading.Lock()

    def frame_loop():
        period = 1.0 / fps
        last = time.perf_counter()
        while not stop.is_set():
            now = time.perf_counter()
            with frame_lock:
                procedure.tick(now - last)
            last = now
            stop.wait(period)

    worker = threading.Thread(target=frame_loop, name="FrameLoop", daemon=True)
    worker.start()
    try:
        while procedure.state is not ExperimentState.COMPLETE:
            click.prompt(f"[{procedure.state.value} step {procedure.controller.current_step}] Enter to advance",
                         default="", show_default=False)
            previous = procedure.controller.last_measurement
            with frame_lock:
                procedure.advance()
            measurement = procedure.controller.last_measurement
            if measurement is not None and measurement is not previous:
                click.echo(f"  step {measurement.step}: accuracy {measurement.accuracy_pct:.2f}%")
    except (KeyboardInterrupt, click.Abort):
        logger.warning("Session interrupted at step %d", procedure.controller.current_step)
    finally:
        stop.set()
        worker.join(timeout=1)
        procedure.shutdown()
    click.echo(f"Summary written to {procedure.summary_path}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8889, show_default=True)
@click.option("--pattern", default="sine", show_default=True, type=click.Choice(["sine", "ramp", "square"]))
@click.option("--rate", default=60.0, show_default=True, help="Packets per second.")
@click.option("--period", default=4.0, show_default=True, help="Seconds per squeeze cycle.")
@click.option("--min-pressure", default=0.0, show_default=True)
@click.option("--max-pressure", default=1000.0, show_default=True)
@click.option("--duration", default=0.0, show_default=True, help="Stop after N seconds (0 = run until Ctrl+C).")
def emit(host, port, pattern, rate, period, min_pressure, max_pressure, duration):
    """Send a synthetic pressure signal as UDP packets."""
    from pressurefield.playback.replay import PressureReplay, UdpPressureEmitter, synthetic_trace

    trace = synthetic_trace(period, rate, pattern=pattern, min_pressure=min_pressure,
                            max_pressure=max_pressure, period=period)
    _play(PressureReplay(trace, loop=True), UdpPressureEmitter(host, port), duration)


@cli.command()
@click.argument("trace", type=click.Path(exists=True, dir_okay=False))
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8889, show_default=True)
@click.option("--speed", default=1.0, show_default=True)
@click.option("--loop", is_flag=True)
def replay(trace, host, port, speed, loop):
    """Replay a recorded ``elapsed,pressure`` CSV trace to the sensor port."""
    from pressurefield.playback.replay import PressureReplay, UdpPressureEmitter

    _play(PressureReplay.from_csv(trace, speed=speed, loop=loop), UdpPressureEmitter(host, port), 0.0)


def _play(playback, emitter, duration):
    playback.add_listener(emitter)
    click.echo(f"Sending to {emitter.address[0]}:{emitter.address[1]} (Ctrl+C to stop)")
    try:
        if duration > 0:
            playback.start()
            time.sleep(duration)
        else:
            playback.start(blocking=True)
    except KeyboardInterrupt:
        pass
    finally:
        playback.stop()
        emitter.close()
    click.echo(f"Sent {emitter.sent} packets")


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False))
def template(output):
    """Write a configuration file with every default block."""
    from pressurefield.utils.config import create_config_template

    create_config_template(output)
    click.echo(f"Template written to {output}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
def validate(config_path):
    """Check a configuration file without opening any socket or file."""
    from pressurefield.utils.config import validate_config_file

    if not validate_config_file(config_path):
        raise click.ClickException(f"{config_path} is not a valid configuration")
    click.echo(f"{config_path} is valid")


if __name__ == "__main__":
    cli()
