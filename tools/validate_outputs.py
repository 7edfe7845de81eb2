#!/usr/bin/env python
"""Schema validator for TE-PID outputs.

Validates the tabular record files against contract v1.0. Negative unique
terms (redundancy above min(TE1, TE2)) are reported as warnings: redundancy
is not conditioned on the target's past, so a target whose past predicts its
future legitimately yields them.
"""
import sys
import pandas as pd
from pathlib import Path
from typing import Dict, List, Tuple

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tepid import settings

# Schema contract v1.0
SCHEMAS = {
    settings.PID_RECORDS_FILE: {
        'required': ['trial', 'target', 'source1', 'source2', 'synergy', 'redundancy', 'unique1', 'unique2'],
        'types': {'target': int, 'source1': int, 'source2': int,
                  'synergy': float, 'redundancy': float, 'unique1': float, 'unique2': float},
        'warn_negative': ['unique1', 'unique2'],
        'distinct': ['target', 'source1', 'source2'],
    },
    settings.ENTROPY_RECORDS_FILE: {
        'required': ['trial', 'target', 'entropy'],
        'types': {'target': int, 'entropy': float},
        'non_negative': ['entropy'],
    },
}


def validate_file(filepath: Path, schema: Dict,
                  tol: float = settings.NUMERIC_TOLERANCE) -> Tuple[bool, List[str], List[str]]:
    """Validate single CSV file against schema.

    Returns:
        (is_valid, error_messages, warning_messages)
    """
    errors = []
    warnings = []

    if not filepath.exists():
        return (False, [f"File not found: {filepath}"], warnings)

    try:
        df = pd.read_csv(filepath)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        return (False, [f"Failed to read CSV: {e}"], warnings)

    if len(df) == 0:
        errors.append("File is empty")

    missing = set(schema['required']) - set(df.columns)
    if missing:
        errors.append(f"Missing required columns: {missing}")

    for col, expected_type in schema.get('types', {}).items():
        if col in df.columns:
            if expected_type == int:
                if not pd.api.types.is_integer_dtype(df[col]):
                    errors.append(f"Column {col} should be integer type")
            elif expected_type == float:
                if not pd.api.types.is_numeric_dtype(df[col]):
                    errors.append(f"Column {col} should be numeric type")

    for col in schema.get('non_negative', []):
        if col in df.columns and pd.api.types.is_numeric_dtype(df[col]):
            n_bad = int((df[col] < -tol).sum())
            if n_bad:
                errors.append(f"Column {col} has {n_bad} values below -{tol:g}")

    for col in schema.get('warn_negative', []):
        if col in df.columns and pd.api.types.is_numeric_dtype(df[col]):
            n_bad = int((df[col] < -tol).sum())
            if n_bad:
                warnings.append(f"Column {col} has {n_bad} values below -{tol:g} "
                                f"(min {df[col].min():.3g}); redundancy exceeds a pairwise TE there")

    distinct = schema.get('distinct')
    if distinct and all(c in df.columns for c in distinct):
        repeated = df[distinct].nunique(axis=1) < len(distinct)
        if repeated.any():
            errors.append(f"{int(repeated.sum())} rows repeat a neuron within one triplet")

    return (len(errors) == 0, errors, warnings)


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Validate TE-PID outputs")
    parser.add_argument('--dir', required=True, help="Output directory to validate")
    parser.add_argument('--schema', default='v1.0', help="Schema version")
    parser.add_argument('--tol', type=float, default=settings.NUMERIC_TOLERANCE,
                        help="Tolerance for the sign checks")
    args = parser.parse_args(argv)

    out_dir = Path(args.dir)
    if not out_dir.exists():
        print(f"ERROR: Directory not found: {out_dir}")
        return 1

    print(f"Validating outputs in: {out_dir}")
    print(f"Schema version: {args.schema}\n")

    all_valid = True

    for filename, schema in SCHEMAS.items():
        is_valid, errors, warnings = validate_file(out_dir / filename, schema, tol=args.tol)

        status = "✓ PASS" if is_valid else "✗ FAIL"
        print(f"{status} {filename}")

        if errors:
            for err in errors:
                print(f"  - {err}")
            all_valid = False
        for warning in warnings:
            print(f"  ! {warning}")
        print()

    if all_valid:
        print("=" * 60)
        print("✓ ALL VALIDATION CHECKS PASSED")
        print("=" * 60)
        return 0
    print("=" * 60)
    print("✗ VALIDATION FAILED - See errors above")
    print("=" * 60)
    return 1


if __name__ == "__main__":
    sys.exit(main())
