#!/usr/bin/env python3
"""
CLI.py — TableMorph Wavetable API client

• Talks to the FastAPI service over HTTP (no generation in-process)
• One subcommand per route: generate / morph / cache / health
• API base URL from TABLEMORPH_API_URL, timeout from CLI_TIMEOUT_SECONDS
• `inspect` reads a written .wt file locally and prints its header stats
• Network and HTTP errors exit non-zero with the server's message
"""

import argparse
import sys
import os
import json
import requests
from typing import Any, Dict

from audio_utils import describe
from errors.tablemorph_errors import WavetableFormatError
from wavetable_types import MorphType, WaveformType
from wavetable_writer import read_wavetable

# ────────────────────────────────────────────────
# Configurable API + Timeout
# ────────────────────────────────────────────────

API = os.getenv("TABLEMORPH_API_URL", "http://127.0.0.1:8000")
DEFAULT_TIMEOUT = float(os.getenv("CLI_TIMEOUT_SECONDS", "300"))

WAVEFORM_CHOICES = [t.value for t in WaveformType]
MORPH_CHOICES = [t.value for t in MorphType]


# ────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────

def _j(x: Any) -> None:
    print(json.dumps(x, indent=2, ensure_ascii=False))


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


def _request(
    method: str,
    path: str,
    *,
    params: Dict[str, Any] | None = None,
    payload_json: Any | None = None,
) -> Any:
    """
    HTTP request wrapper:
      • Respects TABLEMORPH_API_URL
      • Applies timeout
      • Fails noisily on network / HTTP errors
    """
    url = f"{API}{path}"

    try:
        resp = requests.request(
            method=method.upper(),
            url=url,
            params=params,
            json=payload_json,
            timeout=DEFAULT_TIMEOUT,
        )
    except requests.RequestException as exc:
        print(f"❌ Request failed: {exc}", file=sys.stderr)
        print(f"   → {method.upper()} {url}", file=sys.stderr)
        sys.exit(1)

    if not resp.ok:
        try:
            body_str = json.dumps(resp.json(), indent=2, ensure_ascii=False)
        except ValueError:
            body_str = resp.text

        print(f"❌ API error {resp.status_code} for {method.upper()} {url}", file=sys.stderr)
        if body_str:
            print(body_str, file=sys.stderr)
        sys.exit(1)

    try:
        return resp.json()
    except ValueError:
        print(f"⚠️ Non-JSON response from {url}", file=sys.stderr)
        print(resp.text, file=sys.stderr)
        sys.exit(1)


# ────────────────────────────────────────────────
# Generate
# ────────────────────────────────────────────────

def cmd_gen_wavetable(args: argparse.Namespace) -> None:
    payload = _drop_none({
        "seed": args.seed,
        "waveform_type": args.type,
        "frame_count": args.frames,
        "sample_count": args.samples,
    })
    _j(_request("POST", "/generate/wavetable", payload_json=payload))


def cmd_gen_single(args: argparse.Namespace) -> None:
    payload = _drop_none({
        "seed": args.seed,
        "waveform_type": args.type,
        "sample_count": args.samples,
    })
    _j(_request("POST", "/generate/single_cycle", payload_json=payload))


def cmd_gen_batch(args: argparse.Namespace) -> None:
    payload = _drop_none({
        "kind": args.kind,
        "count": args.count,
        "seed": args.seed,
        "waveform_type": args.type,
        "max_workers": args.workers,
    })
    _j(_request("POST", "/generate/batch", payload_json=payload))


# ────────────────────────────────────────────────
# Morph
# ────────────────────────────────────────────────

def cmd_morph(args: argparse.Namespace) -> None:
    payload = _drop_none({
        "morph_type": args.type,
        "source_files": args.files or None,
        "seed": args.seed,
    })
    _j(_request("POST", "/morph", payload_json=payload))


def cmd_morph_batch(args: argparse.Namespace) -> None:
    payload = _drop_none({
        "types": args.types or None,
        "source_files": args.files or None,
        "count": args.count,
        "seed": args.seed,
        "max_workers": args.workers,
    })
    _j(_request("POST", "/morph/batch", payload_json=payload))


# ────────────────────────────────────────────────
# Cache
# ────────────────────────────────────────────────

def cmd_cache_summary(args: argparse.Namespace) -> None:
    _j(_request("GET", "/cache/summary"))


def cmd_cache_rescan(args: argparse.Namespace) -> None:
    _j(_request("POST", "/cache/rescan"))


def cmd_cache_invalidate(args: argparse.Namespace) -> None:
    _j(_request("POST", "/cache/invalidate"))


# ────────────────────────────────────────────────
# Service / local
# ────────────────────────────────────────────────

def cmd_health(args: argparse.Namespace) -> None:
    _j(_request("GET", "/health"))


def cmd_version(args: argparse.Namespace) -> None:
    _j(_request("GET", "/version"))


def cmd_inspect(args: argparse.Namespace) -> None:
    try:
        frames = read_wavetable(args.path)
    except (OSError, WavetableFormatError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    _j({
        "path": args.path,
        "frame_count": int(frames.shape[0]),
        "sample_count": int(frames.shape[1]),
        "first_frame": describe(frames[0]),
        "last_frame": describe(frames[-1]),
    })


# ────────────────────────────────────────────────
# Parser
# ────────────────────────────────────────────────

def build() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="CLI.py",
        description="TableMorph Wavetable API — CLI",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    # ─ generate ─
    g = sub.add_parser("generate")
    gs = g.add_subparsers(dest="gtype", required=True)

    g1 = gs.add_parser("wavetable")
    g1.add_argument("--type", choices=WAVEFORM_CHOICES)
    g1.add_argument("--seed", type=int)
    g1.add_argument("--frames", type=int)
    g1.add_argument("--samples", type=int)
    g1.set_defaults(func=cmd_gen_wavetable)

    g2 = gs.add_parser("single_cycle")
    g2.add_argument("--type", choices=WAVEFORM_CHOICES)
    g2.add_argument("--seed", type=int)
    g2.add_argument("--samples", type=int)
    g2.set_defaults(func=cmd_gen_single)

    g3 = gs.add_parser("batch")
    g3.add_argument("count", type=int)
    g3.add_argument("--kind", choices=["wavetable", "single_cycle"], default="wavetable")
    g3.add_argument("--type", choices=WAVEFORM_CHOICES)
    g3.add_argument("--seed", type=int)
    g3.add_argument("--workers", type=int)
    g3.set_defaults(func=cmd_gen_batch)

    # ─ morph ─
    m = sub.add_parser("morph")
    ms = m.add_subparsers(dest="mtype", required=True)

    m1 = ms.add_parser("one")
    m1.add_argument("--type", choices=MORPH_CHOICES, default="blend")
    m1.add_argument("--files", nargs="*")
    m1.add_argument("--seed", type=int)
    m1.set_defaults(func=cmd_morph)

    m2 = ms.add_parser("batch")
    m2.add_argument("count", type=int)
    m2.add_argument("--types", nargs="*", choices=MORPH_CHOICES)
    m2.add_argument("--files", nargs="*")
    m2.add_argument("--seed", type=int)
    m2.add_argument("--workers", type=int)
    m2.set_defaults(func=cmd_morph_batch)

    # ─ cache ─
    c = sub.add_parser("cache")
    cs = c.add_subparsers(dest="ctype", required=True)
    cs.add_parser("summary").set_defaults(func=cmd_cache_summary)
    cs.add_parser("rescan").set_defaults(func=cmd_cache_rescan)
    cs.add_parser("invalidate").set_defaults(func=cmd_cache_invalidate)

    # ─ service ─
    sub.add_parser("health").set_defaults(func=cmd_health)
    sub.add_parser("version").set_defaults(func=cmd_version)

    i = sub.add_parser("inspect")
    i.add_argument("path")
    i.set_defaults(func=cmd_inspect)

    return p


# ────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    parser = build()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
