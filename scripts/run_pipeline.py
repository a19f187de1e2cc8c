"""Fetch, quantize and upload one model.

Usage:
    python scripts/run_pipeline.py --model org/model --output org/model-q4 --bits 4
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from lotabots.core.config import AppSettings
from lotabots.core.exceptions import ConfigurationError
from lotabots.models.pipeline import CachePolicy, RunConfiguration
from lotabots.orchestration import create_orchestrator


def parse_params(pairs: Sequence[str]) -> dict[str, str]:
    """Parse ``key=value`` pairs. Later duplicates override earlier ones."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Backend parameter must be key=value, got {pair!r}")
        params[key.strip()] = value
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch, quantize and upload a model")
    parser.add_argument("-m", "--model", required=True, help="Model identifier on the hub")
    parser.add_argument("-o", "--output", required=True, help="Output repository name")
    parser.add_argument("-b", "--bits", required=True, type=int, help="Quantization precision (4 or 8 bits)")
    parser.add_argument("-a", "--api-token", default=None,
                        help="Hub API token (or set HF_API_TOKEN env var)")
    parser.add_argument("--cache-dir", default=None, help="Cache directory (default: ~/.cache/lotabots)")
    parser.add_argument("--mixed-precision", action="store_true", help="Keep sensitive tensors at fp16")
    parser.add_argument("--param", action="append", default=[], metavar="KEY=VALUE",
                        help="Backend parameter, repeatable")
    parser.add_argument("--refresh", action="store_true",
                        help="Ignore cached artifacts and re-fetch / re-quantize")
    return parser


def build_config(args: argparse.Namespace, settings: AppSettings) -> RunConfiguration:
    return RunConfiguration.build(
        model_id=args.model,
        output_repo=args.output,
        bits=args.bits,
        token=args.api_token or settings.hub.token,
        cache_dir=args.cache_dir or settings.pipeline.cache_dir,
        mixed_precision=args.mixed_precision,
        params=parse_params(args.param),
        cache_policy=CachePolicy.REFRESH if args.refresh else settings.pipeline.cache_policy,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = AppSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args, settings)
    except ConfigurationError as exc:
        print(exc.message, file=sys.stderr)
        return 2

    outcome = create_orchestrator(settings, token=config.token).run(config)
    if not outcome.ok:
        print(f"{outcome.stage} failed: {outcome.message}", file=sys.stderr)
        return 1

    print(f"Model quantized and uploaded: {outcome.model.path} -> {config.output_repo}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
