# Command-line entry point
import argparse
import functools
import sys
from typing import List, Optional

import numpy as np

from retouch_engine.config import settings
from retouch_engine.io.image_loader import load_image
from retouch_engine.processing.adjustment_log import AdjustmentLog
from retouch_engine.processing.batch_queue import BatchItemSettings, BatchQueue, batch_render_file
from retouch_engine.processing.beauty import BeautyParams
from retouch_engine.processing.color_matrix import filter_names
from retouch_engine.processing.content_fill import InpaintModelService
from retouch_engine.processing.filters import FilterSelection
from retouch_engine.processing.mask_painter import new_mask, paint_dab
from retouch_engine.services.edit_session import EditSession
from retouch_engine.utils.errors import AppError, format_user_error
from retouch_engine.utils.logger import get_logger, set_log_level

logger = get_logger(__name__)

_PIPE = settings.PIPELINE_DEFAULTS
_MASK = settings.MASK_DEFAULTS


def _parse_dab(text: str):
    parts = [float(p) for p in text.split(",")]
    if len(parts) not in (2, 3):
        raise argparse.ArgumentTypeError(f"Expected X,Y or X,Y,RADIUS, got '{text}'")
    return parts


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="retouch-engine", description="Non-destructive photo retouching")
    p.add_argument("--log-level", default=settings.LOGGING_LEVEL,
                   choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    p.add_argument("--quality", type=int, default=None, help="JPEG quality (default 100).")
    p.add_argument("--max-side", type=int, default=None,
                   help="Working resolution bound on the longest side (default 2560).")

    sub = p.add_subparsers(dest="cmd", required=True)

    def add_io(sp):
        sp.add_argument("input", help="Source image.")
        sp.add_argument("output", help="Destination image (.jpg/.png/.webp).")
        sp.add_argument("--op", action="append", default=[], metavar="TOKEN",
                        help="Adjustment token, e.g. ROTATE_90, CROP_4_3, FREE_CROP:0.1,0.1,0.9,0.9. Repeatable.")

    def add_mask(sp):
        sp.add_argument("--mask", help="Mask image; alpha (or luminance when opaque) selects the region.")
        sp.add_argument("--dab", action="append", type=_parse_dab, default=[], metavar="X,Y[,R]",
                        help="Paint a brush dab at pixel X,Y. Repeatable.")
        sp.add_argument("--brush", type=float, default=_MASK["brush_radius"], help="Brush radius.")
        sp.add_argument("--feather", type=float, default=_MASK["feather"], help="Brush feather.")

    bp = sub.add_parser("beauty", help="Smooth, sharpen, whiten and ruddy.")
    add_io(bp)
    bp.add_argument("--smooth", type=float, default=_PIPE["default_smooth"])
    bp.add_argument("--whiten", type=float, default=_PIPE["default_whiten"])
    bp.add_argument("--ruddy", type=float, default=_PIPE["default_ruddy"])
    bp.add_argument("--sharpen", type=float, default=_PIPE["default_sharpen"])

    fp = sub.add_parser("filter", help="Apply a named color filter.")
    add_io(fp)
    fp.add_argument("--name", default=filter_names()[0], help="One of: " + ", ".join(filter_names()))
    fp.add_argument("--strength", type=float, default=1.0)
    fp.add_argument("--strict", action="store_true", help="Fail on unknown filter names.")

    sp = sub.add_parser("soft-blur", help="Blur the masked region.")
    add_io(sp)
    add_mask(sp)
    sp.add_argument("--radius", type=float, default=_MASK["soft_blur_radius"])

    ep = sub.add_parser("erase", help="Remove the masked object.")
    add_io(ep)
    add_mask(ep)
    ep.add_argument("--model", default=settings.CONTENT_FILL_DEFAULTS["model_path"],
                    help="ONNX inpainting model; the blur fallback is used when it cannot be loaded.")

    bt = sub.add_parser("batch", help="Apply beauty or a filter to many photos.")
    bt.add_argument("inputs", nargs="+")
    bt.add_argument("--out-dir", required=True)
    bt.add_argument("--mode", choices=["beauty", "filter"], default="beauty")
    bt.add_argument("--name", default=settings.BATCH_DEFAULTS["filter_name"], help="Filter name for --mode filter.")
    bt.add_argument("--strength", type=float, default=1.0)
    bt.add_argument("--op", action="append", default=[], metavar="TOKEN")
    bt.add_argument("--workers", type=int, default=settings.BATCH_DEFAULTS["max_workers"])
    return p


def _mask_from_file(path: str) -> np.ndarray:
    mask = load_image(path)
    if mask is None:
        raise AppError(f"Could not load mask '{path}'", user_message=f"Could not load mask '{path}'")
    if np.all(mask[..., 3] == 255):
        # Opaque mask image: white paints
        luma = np.dot(mask[..., :3].astype(np.float32), np.array(_PIPE["luma_weights"], dtype=np.float32))
        mask = mask.copy()
        mask[..., 3] = np.clip(np.rint(luma), 0, 255).astype(np.uint8)
    return mask


def _build_mask(args, width: int, height: int) -> np.ndarray:
    if not args.mask and not args.dab:
        raise AppError("No mask given; use --mask or --dab", user_message="No mask given; use --mask or --dab")
    mask = _mask_from_file(args.mask) if args.mask else new_mask(width, height)
    if mask.shape[:2] != (height, width) and args.dab:
        raise AppError("Brush dabs need a mask matching the adjusted image size")
    for dab in args.dab:
        radius = dab[2] if len(dab) == 3 else args.brush
        paint_dab(mask, dab[0], dab[1], radius, args.feather)
    return mask


def _run_single(args) -> int:
    model_service = InpaintModelService(args.model) if args.cmd == "erase" else None
    log = AdjustmentLog.from_tokens(args.op)
    session = EditSession.from_file(
        args.input,
        model_service=model_service,
        log=log,
        working_max_side=args.max_side,
        strict_filters=getattr(args, "strict", False),
    )
    try:
        if args.cmd == "beauty":
            params = BeautyParams(args.smooth, args.whiten, args.ruddy, args.sharpen)

            def render(src):
                return session.render_beauty(params, source=src).image
        elif args.cmd == "filter":
            selection = FilterSelection(args.name, args.strength)

            def render(src):
                return session.render_filter(selection, source=src).image
        else:
            adjusted = session.adjusted_source()
            mask = _build_mask(args, adjusted.shape[1], adjusted.shape[0])
            if args.cmd == "soft-blur":
                def render(src):
                    return session.render_soft_blur(mask, args.radius, source=src)
            else:
                def render(src):
                    return session.remove_object(mask, source=src)

        path = session.export(args.output, render=render, quality=args.quality)
        if args.cmd == "erase":
            logger.info("Content fill path: %s", session.content_fill_path)
        print(path)
        return 0
    finally:
        session.close()


def _run_batch(args) -> int:
    queue = BatchQueue()
    queue.set_global_settings(BatchItemSettings(
        mode=args.mode,
        beauty=BeautyParams.defaults(),
        filter_name=args.name,
        filter_strength=args.strength,
        ops=args.op or None,
        export_quality=args.quality,
    ))
    queue.set_output_dir(args.out_dir)
    queue.add_items(args.inputs)

    stats = queue.process_all(
        functools.partial(batch_render_file, output_dir=args.out_dir),
        max_workers=args.workers,
    )
    for item in queue.get_items():
        if item.is_failed:
            print(f"FAILED {item.filename}: {item.error_message}", file=sys.stderr)
        elif item.output_path:
            print(item.output_path)
    logger.info(
        "Batch finished: %d completed, %d failed (%.0f%% success, %.2fs per photo)",
        stats.completed, stats.failed, stats.success_rate, stats.average_time,
    )
    return 0 if stats.failed == 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run the command-line tool."""
    args = build_parser().parse_args(argv)
    set_log_level(args.log_level)

    try:
        if args.cmd == "batch":
            return _run_batch(args)
        return _run_single(args)
    except AppError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {format_user_error(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
