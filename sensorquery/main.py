"""
Command-line entry point.

Loads a YAML configuration, runs one query and prints the cleaned rows as a
table (or writes them to CSV):

    sensorquery --config config/default.yaml range DEV1 --start 2023-06-01 --end 2023-06-02
"""

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from sensorquery.components import DataAccess, EventsHandler, to_frame
from sensorquery.config import ClientConfig
from sensorquery.utils import LoggingObserver, SensorQueryError, get_logger, setup_logging


def _sensor_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [s.strip() for s in value.split(",") if s.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sensorquery", description="Query IoT sensor data")
    parser.add_argument("--config", type=Path, default=Path("config/default.yaml"), help="YAML configuration file")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument("--on-prem", action="store_true", default=None, help="Use HTTP for this run")
    parser.add_argument("--output", type=Path, help="Write rows to this CSV file instead of printing")

    commands = parser.add_subparsers(dest="command", required=True)

    def sensor_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("device_id")
        sub.add_argument("--sensors", help="Comma-separated sensor ids (default: all)")
        sub.add_argument("--no-cal", dest="cal", action="store_false", help="Skip calibration")
        sub.add_argument("--alias", action="store_true", help="Use sensor names")
        sub.add_argument("--unix", action="store_true", help="Epoch millisecond times")
        return sub

    first = sensor_command("first", "First datapoint after a start time")
    first.add_argument("--start", help="Start time (default: now)")

    last = sensor_command("last", "Last n datapoints before an end time")
    last.add_argument("-n", type=int, default=1, help="Points per sensor")
    last.add_argument("--end", help="End time (default: now)")

    ranged = sensor_command("range", "All datapoints between two times, one row per timestamp")
    ranged.add_argument("--start", required=True)
    ranged.add_argument("--end", help="End time (default: now)")
    ranged.add_argument("--sort", action="store_true", help="Order rows chronologically")

    commands.add_parser("devices", help="Devices added to the account")

    entities = commands.add_parser("entities", help="Load entities")
    entities.add_argument("--clusters", help="Comma-separated names or ids to keep")

    events = commands.add_parser("events", help="Detailed events in a time range")
    events.add_argument("--tags", help="Comma-separated event tag ids (default: all)")
    events.add_argument("--start", help="Start time (default: now)")
    events.add_argument("--end", help="End time (default: now)")

    return parser


async def run(args: argparse.Namespace, config: ClientConfig) -> list:
    """Execute the selected command and return its rows."""
    observer = LoggingObserver()

    if args.command == "events":
        async with EventsHandler(config, observer=observer) as events:
            return await events.get_detailed_event(
                _sensor_list(args.tags), args.start, args.end, on_prem=args.on_prem
            )

    async with DataAccess(config, observer=observer) as access:
        if args.command == "devices":
            return [d.model_dump(by_alias=True) for d in await access.get_device_details(args.on_prem)]
        if args.command == "entities":
            entities = await access.get_load_entities(_sensor_list(args.clusters), args.on_prem)
            return [e.model_dump() for e in entities]

        options = dict(
            sensor_list=_sensor_list(args.sensors),
            cal=args.cal,
            alias=args.alias,
            unix=args.unix,
            on_prem=args.on_prem,
        )
        if args.command == "first":
            return await access.get_first_dp(args.device_id, start_time=args.start, **options)
        if args.command == "last":
            return await access.get_dp(args.device_id, n=args.n, end_time=args.end, **options)
        return await access.data_query(
            args.device_id, start_time=args.start, end_time=args.end, sort=args.sort, **options
        )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line client."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, include_timestamp=False)
    logger = get_logger(__name__)

    try:
        config = ClientConfig.from_yaml(args.config)
        rows = asyncio.run(run(args, config))
    except (FileNotFoundError, PydanticValidationError, SensorQueryError) as e:
        logger.error(f"Query failed: {e}")
        return 1

    frame = to_frame(rows)
    if args.output:
        frame.to_csv(args.output, index=False)
        print(f"Wrote {len(frame)} rows to {args.output}")
    elif frame.empty:
        print("No rows returned")
    else:
        print(frame.to_string(index=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
