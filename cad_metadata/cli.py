from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cad-extract",
        description="Extract CAD metadata through the APS Model Derivative service",
    )

    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument("path", nargs="?", default=None, help="Local CAD file to upload and translate")
    source.add_argument("--urn", default=None, help="Extract metadata for an already submitted job")

    p.add_argument("--bucket", default=None, help="Bucket key (default from env APS_BUCKET_KEY)")
    p.add_argument(
        "--timeout",
        type=float,
        default=0,
        help="Override CAD_REQUEST_TIMEOUT_SECONDS (0 = use env/default)",
    )
    p.add_argument("--indent", type=int, default=2, help="JSON indentation (0 = compact)")
    p.add_argument("--log-level", default="INFO", help="Python logging level (INFO, DEBUG, ...)")
    return p
