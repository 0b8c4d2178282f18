"""
cli.py

Remove the background of one photo and export it:
- Sends the subject to the remote model (Gemini) for background removal
- Optionally places it over a replacement background (cover-fit, centered)
- Writes a transparent PNG, a white/background JPEG or a 600x600 passport JPEG

Usage:
  backdropshop --input me.jpg
  backdropshop --input me.jpg --background beach.jpg --mode jpeg --output-dir out/
  backdropshop --input me.jpg --mode passport

Needs GEMINI_API_KEY in the environment (or a .env file).
"""

from __future__ import annotations

import argparse
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

from backdropshop.config import configure_logging, get_settings
from backdropshop.core.models import OutputMode
from backdropshop.core.pipeline import Segmenter, run_pipeline
from backdropshop.errors import BackdropShopError
from backdropshop.segmentation.client import SegmentationClient

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Remove a photo's background and export it.")
    p.add_argument("--input", "-i", required=True, help="Path to the subject photo (jpg/png/webp, etc.)")
    p.add_argument("--background", "-b", help="Optional replacement background image")
    p.add_argument(
        "--mode",
        "-m",
        default=OutputMode.TRANSPARENT_PNG.value,
        choices=[m.value for m in OutputMode],
        help="png (transparent or with background), jpeg (white or with background), passport (600x600 JPG)",
    )
    p.add_argument("--output-dir", "-o", default=".", help="Directory to write the exported file to")
    return p


def _guess_mime(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or ""


def main(argv: Optional[list[str]] = None, segmenter: Optional[Segmenter] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    input_path = Path(args.input)
    mode = OutputMode(args.mode)

    try:
        if not input_path.is_file():
            raise FileNotFoundError(f"Input file not found: {input_path}")
        mime_type = _guess_mime(input_path)
        if not mime_type.startswith("image/"):
            raise ValueError(f"Not an image file: {input_path}")

        background_bytes = None
        if args.background:
            if mode is OutputMode.PASSPORT_JPEG:
                logger.warning("Passport photos always use a white background; ignoring %s", args.background)
            else:
                background_bytes = Path(args.background).read_bytes()

        output = run_pipeline(
            segmenter or SegmentationClient(settings=settings),
            input_path.read_bytes(),
            mime_type,
            input_path.name,
            mode=mode,
            background_bytes=background_bytes,
            jpeg_quality=settings.jpeg_quality,
        )

        out_dir = Path(args.output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / output.suggested_file_name
        out_path.write_bytes(output.data)
    except BackdropShopError as e:
        print(f"ERROR: {e.user_message}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(f"Saved: {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
