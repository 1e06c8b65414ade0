from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from monitor.config import MONITOR_CONFIG, load_config
from monitor.core import RoomConnection
from monitor.events import GIFT_EVENT, EventBus
from monitor.monitors import guard_monitor, raffle_monitor

logger = logging.getLogger(__name__)


def _raffle_target(value: str) -> Tuple[int, int]:
    """ROOM or ROOM:AREA"""
    room, _, area = value.partition(":")
    try:
        return int(room), int(area or 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected ROOM or ROOM:AREA, got {value!r}") from exc


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="monitor", description="Watch live rooms for gift opportunities.")
    parser.add_argument("--uid", type=int, default=0, help="viewer id sent in the handshake")
    parser.add_argument("--guard", type=int, action="append", default=[], metavar="ROOM")
    parser.add_argument("--raffle", type=_raffle_target, action="append", default=[], metavar="ROOM[:AREA]")
    parser.add_argument("--env", default=".env", help="env file to load settings from")
    args = parser.parse_args(argv)
    if not args.guard and not args.raffle:
        parser.error("nothing to watch: pass --guard and/or --raffle")
    return args


def build_monitors(args: argparse.Namespace, bus: EventBus) -> List[RoomConnection]:
    monitors = [guard_monitor(room, args.uid, bus) for room in args.guard]
    monitors += [raffle_monitor(room, args.uid, bus, area) for room, area in args.raffle]
    return monitors


async def run_monitors(args: argparse.Namespace) -> None:
    bus = EventBus()
    bus.on(GIFT_EVENT, lambda room_id: logger.info("Gift opportunity in room %s", room_id))
    monitors = build_monitors(args, bus)
    pending = [monitor.connect() for monitor in monitors]
    try:
        for finished in asyncio.as_completed(pending):
            room_id = await finished
            logger.info("Stopped watching room %s", room_id)
    finally:
        for monitor in monitors:
            monitor.close()
        await bus.drain()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    load_config(args.env)
    logging.basicConfig(level=MONITOR_CONFIG["log_level"])
    try:
        asyncio.run(run_monitors(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
