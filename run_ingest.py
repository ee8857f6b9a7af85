"""Convenience script for running one ingestion cycle or newsletter batch locally."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the newsy package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from newsy.config import load_config  # noqa: E402  (import after path setup)
from newsy.runtime import build_services  # noqa: E402


def main() -> None:
    """Load the configuration and run the requested job once."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("job", choices=("ingest", "newsletter"), nargs="?", default="ingest")
    parser.add_argument("--config", help="Path to a JSON configuration file")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Could not load configuration: %s", exc)
        sys.exit(1)

    services = build_services(config)
    if args.job == "ingest":
        report = services.ingestion.run_cycle()
    else:
        report = services.newsletter.run()

    print(json.dumps(report.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    main()
