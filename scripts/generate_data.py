"""
Synthetic data generator for the parallel CSV bulk loader.

Writes a deterministic pseudo-random CSV whose header matches the sample
`records` table in `db/init.sql`, so a load can be exercised end to end:

    python -m scripts.generate_data --rows 100000 --output data/records.csv
    bulk-loader load loader.json data/records.csv
"""

from __future__ import annotations

import csv
import json
import random
import sys
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

import typer

app = typer.Typer(help="Generate a synthetic CSV file for bulk loading.")

HEADER = ["external_id", "category", "payload", "amount", "is_active", "created_at"]


def _generate_rows_csv(
    csv_path: Path,
    rows: int,
    batch_size: int,
    seed: int,
    delimiter: str = ",",
) -> None:
    rng = random.Random(seed)
    categories = ["alpha", "beta", "gamma", "delta"]
    base = datetime(2024, 1, 1, tzinfo=UTC)

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=delimiter)
        writer.writerow(HEADER)

        buffer: list[list[str]] = []
        for i in range(rows):
            payload = {
                "user_id": rng.randint(1, 1_000_000),
                "action": rng.choice(["view", "click", "purchase", "impression"]),
            }
            created_at = base + timedelta(seconds=rng.randint(0, 365 * 24 * 3600))
            buffer.append(
                [
                    str(i + 1),
                    rng.choice(categories),
                    json.dumps(payload),
                    f"{rng.uniform(1, 10_000):.2f}",
                    "t" if rng.choice([True, False]) else "f",
                    created_at.isoformat(),
                ]
            )
            if len(buffer) >= batch_size:
                writer.writerows(buffer)
                buffer.clear()
        if buffer:
            writer.writerows(buffer)


@app.command()
def main(
    rows: int = typer.Option(
        100_000,
        "--rows",
        "-r",
        min=0,
        help="Number of data rows to generate.",
    ),
    batch_size: int = typer.Option(
        10_000,
        "--batch-size",
        "-b",
        min=1,
        help="Batch size for CSV buffering during generation.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path = typer.Option(
        Path("data/records.csv"),
        "--output",
        "-o",
        help="CSV output path.",
    ),
    delimiter: str = typer.Option(
        ",",
        "--delimiter",
        "-d",
        help="Field delimiter.",
    ),
) -> None:
    """
    Generate synthetic rows for the sample `records` table.
    """
    start = time.perf_counter()
    output.parent.mkdir(parents=True, exist_ok=True)

    typer.echo(f"Generating {rows:,} rows -> {output} (batch={batch_size}, seed={seed})")
    _generate_rows_csv(output, rows=rows, batch_size=batch_size, seed=seed, delimiter=delimiter)
    duration = time.perf_counter() - start
    rate = rows / duration if duration > 0 else 0.0
    typer.echo(f"CSV generation completed in {duration:.2f}s ({rate:,.0f} rows/s)")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
