import argparse
import dataclasses
import datetime as dt
import logging
from pathlib import Path

from slotboard.config import load_settings
from slotboard.generator import run_generation


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _parse_now(raw: str) -> dt.datetime:
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="SlotBoard: bookable slot page generator")
    parser.add_argument("--ics-file", help="Read the calendar from a local .ics file instead of ICAL_URL")
    parser.add_argument("--output", help="Where to write the page (overrides OUTPUT_PATH)")
    parser.add_argument("--now", type=_parse_now, help="Reference time, ISO 8601 (default: current time)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)
    log = logging.getLogger(__name__)

    try:
        settings = load_settings(require_ical_url=args.ics_file is None)
        if args.output:
            settings = dataclasses.replace(settings, output_path=args.output)

        ics_text = Path(args.ics_file).read_text(encoding="utf-8") if args.ics_file else None
        run_generation(settings, now=args.now, ics_text=ics_text)
        return 0

    except Exception as e:
        log.error("Generation failed (%s: %s)", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
