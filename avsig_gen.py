#!/usr/bin/env python3
"""Command-line interface for the antivirus signature generator."""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import List, Sequence

import yaml

from avsig import SignatureAssembler, SignatureError, SignatureType
from avsig.loader import load_policies, load_snapshot
from avsig.signature import SignatureBatch


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--snapshot",
        type=Path,
        required=True,
        help="Matcher output (JSON or YAML) with per-item byte regions",
    )
    parser.add_argument(
        "--policy",
        type=Path,
        action="append",
        dest="policies",
        required=True,
        help="Generation policy file; may be given several times",
    )
    parser.add_argument(
        "--format",
        choices=[kind.name.lower() for kind in SignatureType if kind is not SignatureType.INVALID],
        default="yara",
        help="Signature dialect to render",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the signatures to this file instead of stdout",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the full signature records (body and policy) as JSON",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Compile YARA output with yara-python before writing it",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def validate_inputs(paths: Sequence[Path]) -> None:
    for path in paths:
        if not path.exists():
            raise SystemExit(f"missing input file: {path}")


def render_batch(batch: SignatureBatch, as_json: bool) -> str:
    if as_json:
        return json.dumps(batch.to_dict(), indent=2) + "\n"
    chunks: List[str] = []
    for signature in batch:
        text = signature.text
        chunks.append(text if text.endswith("\n") else text + "\n")
    return "".join(chunks)


def main(argv: Sequence[str] | None = None) -> None:
    start_time = time.perf_counter()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    validate_inputs([args.snapshot, *args.policies])

    try:
        snapshot = load_snapshot(args.snapshot)
        policies = [policy for path in args.policies for policy in load_policies(path)]
    except (ValueError, yaml.YAMLError) as exc:
        raise SystemExit(f"failed to load inputs: {type(exc).__name__}: {exc}") from exc

    assembler = SignatureAssembler(snapshot)
    try:
        batch = assembler.generate_batch((policy, args.format) for policy in policies)
        if args.validate:
            from avsig.validation import validate_signature

            for signature in batch:
                validate_signature(signature)
    except SignatureError as exc:
        raise SystemExit(f"signature generation failed: {type(exc).__name__}: {exc}") from exc

    output = render_batch(batch, args.json)
    if args.out is not None:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(output, "utf-8")
        print(f"{len(batch)} signature(s) written to {args.out}")
        total_time = time.perf_counter() - start_time
        print(f"signature generation completed in {total_time:.2f}s")
    else:
        print(output, end="")


if __name__ == "__main__":
    main()
