"""Process-wide gateway context.

Everything the gateway needs is built once from the configuration and
handed around by reference; nothing reads global state. The mapping index
is the one part rebuilt while running: when the configuration file changes
(the CLI's map/unmap/enable/disable/import commands write it) the resolver
is rebuilt from the file.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from core.config import load_config, mappings_from_config
from core.controller import HueBridge
from core.errors import ConfigError
from core.events import EventStream
from core.hub import Hub
from core.resolver import MappingResolver
from core.server import GatewayServer

logger = logging.getLogger(__name__)

DEFAULT_MAPPING_RELOAD_INTERVAL = 2.0


def file_version(path: Path | None):
    """Modification stamp of a file, or None when it cannot be read."""
    if path is None:
        return None
    try:
        stat = path.stat()
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


@dataclass
class GatewayContext:
    config: dict
    resolver: MappingResolver
    bridge: HueBridge
    stream: EventStream
    hub: Hub
    config_file: Path | None = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    server: GatewayServer | None = None
    mapping_reload_interval: float = DEFAULT_MAPPING_RELOAD_INTERVAL
    _mapping_version: tuple | None = field(default=None, repr=False)
    _watcher: threading.Thread | None = field(default=None, repr=False)

    def start_background(self):
        """Start the hub owner thread, the event stream thread and the mapping watcher."""
        self.hub.start(self.stop_event)
        self.stream.start(self.stop_event)
        if self.config_file is not None and self.mapping_reload_interval > 0:
            self._mapping_version = file_version(self.config_file)
            self._watcher = threading.Thread(target=self.watch_mappings, name='mapping-watcher', daemon=True)
            self._watcher.start()

    def reload_mappings(self) -> int:
        """Rebuild the resolver from the mappings in the configuration file.

        Environment credential overrides play no part here; only the
        mapping list is taken from the file.

        Returns:
            Number of enabled mappings now indexed

        Raises:
            ConfigError: If the file or one of its mappings is invalid; the
                current index is kept
        """
        if self.config_file is None:
            raise ConfigError("no configuration file to reload mappings from")

        version = file_version(self.config_file)
        if version is None:
            # A missing file would load as defaults and unmap everything
            raise ConfigError(str(self.config_file), "configuration file is missing")
        config = load_config(self.config_file, environ={})
        try:
            mappings = mappings_from_config(config)
        except ValueError as e:
            raise ConfigError(str(self.config_file), f"invalid mapping: {e}") from e

        self.resolver.rebuild(mappings)
        self.config['mappings'] = config['mappings']
        self._mapping_version = version

        count = len(self.resolver.mappings())
        logger.info("Mappings reloaded", extra={'fields': {'enabled': count, 'file': str(self.config_file)}})
        return count

    def watch_mappings(self):
        """Poll the configuration file and reload mappings when it changes."""
        while not self.stop_event.wait(self.mapping_reload_interval):
            if file_version(self.config_file) == self._mapping_version:
                continue
            try:
                self.reload_mappings()
            except ConfigError as e:
                # Retried on the next poll; a half-written file settles quickly
                logger.warning("Keeping current mappings: %s", e.technical_message)

    def shutdown(self):
        """Signal every thread to stop and close the live connections."""
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        self.stream.stop()
        if self.server is not None:
            self.server.shutdown()
        self.hub.stop()
        logger.info("Gateway stopped")


def build_context(config: dict, config_file: Path | None = None,
                  bridge: HueBridge | None = None) -> GatewayContext:
    """Wire resolver, bridge, event stream, hub and server from a configuration."""
    hue = config.get('hue', {})
    gateway = config.get('gateway', {})
    server_config = config.get('server', {})

    resolver = MappingResolver(mappings_from_config(config))
    bridge = bridge or HueBridge(hue.get('bridge_ip') or None, hue.get('application_key') or None)
    hub = Hub(
        resolver,
        bridge,
        allow_direct_ids=bool(gateway.get('allow_direct_ids', False)),
        client_queue_size=int(gateway.get('client_queue_size', 100)),
    )
    bridge.subscribe(hub.publish)
    stream = EventStream(bridge)

    server = GatewayServer(
        hub,
        host=server_config.get('host', '0.0.0.0'),
        port=int(server_config.get('port', 8080)),
        ping_interval=float(gateway.get('ping_interval', 30)),
    )

    return GatewayContext(
        config=config,
        resolver=resolver,
        bridge=bridge,
        stream=stream,
        hub=hub,
        config_file=config_file,
        server=server,
        mapping_reload_interval=float(gateway.get('mapping_reload_interval', DEFAULT_MAPPING_RELOAD_INTERVAL)),
    )
