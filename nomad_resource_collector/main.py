"""
Main entry point for the nomad resource collector.
"""

import argparse
import logging
import sys
import time

from nomad_resource_collector.control_plane.config import ConfigManager
from nomad_resource_collector.common.exception import ConfigError
from nomad_resource_collector.common.logging import configure_logging, get_logger
from nomad_resource_collector.collector.fleet.fleet_driver import FleetDriver
from nomad_resource_collector.collector.health.metrics_aggregator import MetricsAggregator
from nomad_resource_collector.collector.output.record_writer import JsonLinesWriter


logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nomad-resource-collector",
        description="Periodically collect requested and used resources of Nomad jobs.",
    )
    parser.add_argument("--config", help="path to the collector configuration file")
    parser.add_argument("--output", default="-", help="JSON-lines output file, '-' for stdout")
    parser.add_argument("--once", action="store_true", help="run a single collection cycle and exit")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    return parser.parse_args(argv)


def run_once(driver: FleetDriver, writer: JsonLinesWriter, metrics_aggregator: MetricsAggregator):
    """Run one collection cycle and hand its records to the writer."""
    fleet_result = driver.run_cycle()
    writer.write(fleet_result.records)
    for error in fleet_result.errors:
        logger.warning(error.describe())
    metrics_aggregator.record_cycle(fleet_result)
    logger.info(f"Cycle stats:\n{metrics_aggregator.get_prometheus_format()}")
    return fleet_result


def main(argv=None) -> int:
    """Main entry point for the collector."""
    args = parse_args(argv)
    configure_logging(getattr(logging, args.log_level.upper(), logging.INFO))
    logger.info("Starting Nomad Resource Collector")

    try:
        config = ConfigManager(args.config).load()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    driver = FleetDriver(config)
    writer = JsonLinesWriter(args.output)
    metrics_aggregator = MetricsAggregator()

    try:
        while True:
            cycle_start = time.time()
            run_once(driver, writer, metrics_aggregator)
            if args.once:
                break
            time.sleep(max(0.0, config.poll_interval - (time.time() - cycle_start)))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        writer.close()
        driver.close()
        logger.info("Nomad Resource Collector stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
