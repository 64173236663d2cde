"""
Demo script: load every station of a configuration via the public API.

Usage:
    python scripts/run_ingest.py io.yaml
    python scripts/run_ingest.py io.yaml 2020-01-01T00:00 2020-12-31T23:59

Prints the resolved layout of each station file, then the number of
records and the first rows read within the (optional) date range.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("run_ingest")


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _parse_bound(argv: list[str], idx: int) -> datetime | None:
    """Parse an optional ISO date argument."""
    if len(argv) <= idx:
        return None
    return datetime.fromisoformat(argv[idx])


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    import meteo_csv_ingest

    if len(sys.argv) < 2:
        log.error("Usage: run_ingest.py CONFIG.yaml [START [END]]")
        sys.exit(2)

    config_path = sys.argv[1]
    date_start = _parse_bound(sys.argv, 2)
    date_end = _parse_bound(sys.argv, 3)

    ds = meteo_csv_ingest.open(config_path)

    info = ds.describe()
    for station_id in info.stations:
        log.info("=" * 70)
        log.info("Station: %s", station_id)
        log.info("  file   : %s", info.files[station_id])
        log.info("  fields : %s", ", ".join(info.fields[station_id]))
        log.info("  order  : %s", info.order[station_id])

    frames = ds.load_frame(date_start, date_end)
    if not isinstance(frames, dict):
        frames = {info.stations[0]: frames}
    for station_id, df in frames.items():
        log.info("=" * 70)
        log.info("Station %s: %s rows", station_id, f"{len(df):,}")
        if not df.empty:
            log.info("\n%s", df.head(10).to_string())

    log.info("All stations processed.")


if __name__ == "__main__":
    main()
