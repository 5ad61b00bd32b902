#!/usr/bin/env python3
"""Dataset generation script for import performance testing.

Generates a synthetic applicant CSV in the format accepted by the importer:
- Row 1: Header row (canonical column names)
- Row 2+: Data rows

A share of rows can be made deliberately invalid (bad email, future date of
birth, missing category, duplicate case ID) to exercise validation and the
bulk corrections. Untidy-but-fixable values (stray whitespace, lower-case
names, local phone numbers, empty priority) are mixed in as well.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

COLUMNS = ["case_id", "applicant_name", "dob", "email", "phone", "category", "priority"]

FIRST_NAMES = ["aarav", "Priya", "JOHN", "maria", "Wei", "fatima", "Liam", "ananya"]
LAST_NAMES = ["sharma", "Doe", "KUMAR", "garcia", "Chen", "khan", "Smith", "iyer"]
CATEGORIES = ["TAX", "LICENSE", "PERMIT"]
PRIORITIES = ["LOW", "MEDIUM", "HIGH", ""]
BREAKAGES = ["email", "dob", "category", "duplicate"]


def generate_cases(rows: int, error_ratio: float = 0.0, seed: int = 42) -> pd.DataFrame:
    """Generate ``rows`` synthetic applicant records.

    Args:
        rows: Number of data rows
        error_ratio: Share of rows (0..1) that get exactly one validation error
        seed: Random seed for reproducible data

    Returns:
        DataFrame with the canonical columns, every value a string
    """
    rng = np.random.default_rng(seed)

    first = rng.choice(FIRST_NAMES, rows)
    last = rng.choice(LAST_NAMES, rows)
    years = rng.integers(1940, 2005, rows)
    months = rng.integers(1, 13, rows)
    days = rng.integers(1, 29, rows)
    mobiles = rng.integers(0, 100_000, rows)

    data: dict[str, list[str]] = {
        "case_id": [f"CASE-{i:06d}" for i in range(1, rows + 1)],
        "applicant_name": [f"{f}  {l} " if i % 7 == 0 else f"{f} {l}" for i, (f, l) in enumerate(zip(first, last))],
        "dob": [f"{y:04d}-{m:02d}-{d:02d}" for y, m, d in zip(years, months, days)],
        "email": [f"{f.lower()}.{l.lower()}{i}@example.com" for i, (f, l) in enumerate(zip(first, last))],
        "phone": [f"+9198765{n:05d}" if i % 2 else f"98765 {n:05d}" for i, n in enumerate(mobiles)],
        "category": rng.choice(CATEGORIES, rows).tolist(),
        "priority": rng.choice(PRIORITIES, rows).tolist(),
    }
    df = pd.DataFrame(data, columns=COLUMNS)

    broken = int(rows * error_ratio)
    if broken:
        targets = rng.choice(np.arange(1, rows), size=min(broken, rows - 1), replace=False)
        for pos, index in enumerate(sorted(targets)):
            kind = BREAKAGES[pos % len(BREAKAGES)]
            if kind == "email":
                df.at[index, "email"] = "not-an-email"
            elif kind == "dob":
                df.at[index, "dob"] = "2099-01-01"
            elif kind == "category":
                df.at[index, "category"] = ""
            else:
                df.at[index, "case_id"] = df.at[0, "case_id"]
    return df


def write_dataset(output_path: Path, rows: int, error_ratio: float, seed: int) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = generate_cases(rows, error_ratio, seed)
    df.to_csv(output_path, index=False)
    print(f"Created CSV file: {output_path}")
    print(f"  Rows: {rows:,} (+ 1 header row)")
    print(f"  Invalid rows: ~{int(rows * error_ratio):,}")


def main(argv: list[str] | None = None) -> int:
    """Main CLI interface for dataset generation."""
    parser = argparse.ArgumentParser(
        description="Generate synthetic applicant CSV datasets for performance testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate default 50k rows, all valid
  %(prog)s cases.csv

  # 10% invalid rows
  %(prog)s cases_dirty.csv --rows 20000 --error-ratio 0.1
        """,
    )
    parser.add_argument("output", type=Path, help="Output CSV file path")
    parser.add_argument("--rows", type=int, default=50_000, help="Number of data rows (default: 50,000)")
    parser.add_argument("--error-ratio", type=float, default=0.0,
                        help="Share of rows with one validation error (default: 0)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args(argv)

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.error_ratio <= 1.0:
        print("Error: --error-ratio must be between 0 and 1", file=sys.stderr)
        return 1

    write_dataset(args.output, args.rows, args.error_ratio, args.seed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
