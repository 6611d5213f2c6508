import asyncio
import sys

from toolbroker import config, logger
from toolbroker.broker.host import BrokerHost
from toolbroker.catalog import CatalogError
from toolbroker.catalog.loader import build_registry
from toolbroker.health import start_health_server, stop_health_server
from toolbroker.server import serve_stdio


def main():
    """Main entry point for the toolkit broker."""
    try:
        registry = build_registry()
    except CatalogError as e:
        logger.error('Catalog composition failed, refusing to start', err=e)
        sys.exit(1)

    host = BrokerHost(registry)

    logger.info('Starting toolkit broker',
                version=config.BROKER_VERSION,
                integrations=list(registry.categories()),
                operations=registry.total_operations())

    # Health server port (0 to disable)
    if config.HEALTH_PORT > 0:
        start_health_server(
            port=config.HEALTH_PORT,
            status_provider=host.get_status,
            metrics_provider=host.get_prometheus_metrics,
        )

    try:
        asyncio.run(serve_stdio(host))
    except KeyboardInterrupt:
        logger.info('Shutting down toolkit broker')
    finally:
        stop_health_server()
        logger.info('Broker shutdown complete',
                    broker_calls=host.metrics.broker_calls_total.get(),
                    dispatches=host.metrics.dispatch_total.get())


if __name__ == '__main__':
    main()
