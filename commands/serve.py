"""
Gateway runtime command.

Starts the event hub, the bridge event stream and the websocket server,
and runs until interrupted.
"""

import logging
import signal

import click

from commands.helpers import get_config, get_config_file
from core.context import build_context
from core.errors import BridgeError, ConfigError
from core.log import LOG_FORMATS, setup_logging

logger = logging.getLogger(__name__)


@click.command()
@click.option('--host', help='Listen address (overrides server.host)')
@click.option('--port', '-p', type=click.IntRange(1, 65535), help='Listen port (overrides server.port)')
@click.option('--log-level', type=click.Choice(['debug', 'info', 'warning', 'error'], case_sensitive=False),
              help='Log level (overrides logging.level)')
@click.option('--log-format', type=click.Choice(LOG_FORMATS), help='Log format (overrides logging.format)')
@click.pass_context
def serve_command(ctx, host: str | None, port: int | None, log_level: str | None, log_format: str | None):
    """Run the gateway.

    Loxone connects to ws://<host>:<port>/ws?type=loxone&id=<name> and
    sends commands such as 'SET kitchen BRI 50'. A plain HTTP request to
    /ws?cmd=<command> runs one command and returns JSON.

    Mapping changes made with the other commands are picked up while the
    gateway runs (the config file is checked every
    gateway.mapping_reload_interval seconds; SIGHUP reloads at once).

    \b
    Examples:
      loxone-hue serve
      loxone-hue serve -p 9000 --log-format json
    """
    config = get_config(ctx)
    if host:
        config['server']['host'] = host
    if port:
        config['server']['port'] = port

    logging_config = config['logging']
    try:
        setup_logging(log_level or logging_config.get('level', 'info'),
                      log_format or logging_config.get('format', 'console'))
    except ValueError as e:
        raise click.ClickException(f"Invalid logging configuration: {e}")

    context = build_context(config, get_config_file(ctx))

    if not context.bridge.is_configured():
        logger.warning("Hue Bridge is not configured; commands will fail until 'configure' is run")
    else:
        try:
            info = context.bridge.reload()
            logger.info("Loaded bridge state", extra={'fields': info['counts']})
        except BridgeError as e:
            # The lazy fetch on a cache miss covers anything not loaded here
            logger.warning("Initial bridge fetch failed: %s", e.technical_message)

    context.start_background()

    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        context.shutdown()

    def handle_reload(signum, frame):
        logger.info("Received signal %s, reloading mappings", signum)
        try:
            context.reload_mappings()
        except ConfigError as e:
            logger.warning("Keeping current mappings: %s", e.technical_message)

    signal.signal(signal.SIGTERM, handle_signal)
    if hasattr(signal, 'SIGHUP'):
        signal.signal(signal.SIGHUP, handle_reload)

    try:
        context.server.serve_forever()
    except KeyboardInterrupt:
        pass
    except OSError as e:
        raise click.ClickException(f"Cannot listen on {config['server']['host']}:{config['server']['port']}: {e}")
    finally:
        context.shutdown()
