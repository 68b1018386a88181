#!/usr/bin/env python3
"""Run Cut Rhythm shot analysis on a local video file."""
from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from src.rhythm import (
    AnalysisCancelled,
    AnalysisError,
    Analyzer,
    AnalyzerConfig,
    CancellationToken,
    LearnedModelConfig,
    SamplerConfig,
)

MODEL_DIR_ENV = "RHYTHM_MODEL_DIR"
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect shots and compute cutting rhythm for a video")
    parser.add_argument("video", help="Path to the video file to analyze")
    parser.add_argument(
        "--edl",
        default=None,
        help="Edit decision list whose cuts replace automatic detection",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the JSON result to this path (default: print to stdout)",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Path to an ONNX shot boundary model (default: search env RHYTHM_MODEL_DIR)",
    )
    parser.add_argument(
        "--no-model",
        action="store_true",
        help="Skip the learned model and use heuristic detection only",
    )
    parser.add_argument(
        "--backend",
        choices=["auto", "opencv", "ffmpeg"],
        default="auto",
        help="Video decoding backend (default: auto)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AnalyzerConfig:
    model_dir = os.environ.get(MODEL_DIR_ENV)
    model = LearnedModelConfig(
        enabled=not args.no_model,
        model_path=Path(args.model) if args.model else None,
        model_dir=Path(model_dir) if model_dir else None,
    )
    return AnalyzerConfig(sampler=SamplerConfig(backend=args.backend), model=model)


def _print_progress(percent: int) -> None:
    print(f"\rAnalyzing... {percent:3d}%", end="", file=sys.stderr, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    token = CancellationToken()

    def _on_interrupt(signum, frame) -> None:
        print("\n[WARN] Cancelling analysis...", file=sys.stderr)
        token.cancel()

    previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
    analyzer = Analyzer(build_config(args), logging.getLogger("cutrhythm.cli"))
    try:
        result = analyzer.analyze_path(
            args.video,
            edl_path=args.edl,
            on_progress=_print_progress,
            cancel_token=token,
        )
    except AnalysisCancelled:
        print("\nAnalysis cancelled.", file=sys.stderr)
        return EXIT_CANCELLED
    except AnalysisError as error:
        print(f"\n[FAIL] {error}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    print(file=sys.stderr)

    payload = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    if args.output:
        try:
            Path(args.output).write_text(payload, encoding="utf-8")
        except OSError as error:
            print(f"[FAIL] Could not write {args.output}: {error}", file=sys.stderr)
            return EXIT_ERROR
        print(f"Saved report to {args.output}")
    else:
        print(payload)

    print(
        f"[INFO] {len(result.shots)} shot(s) via {result.detection_mode}; "
        f"ASL={result.asl:.2f}s MSL={result.msl:.2f}s",
        file=sys.stderr,
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
