"""Command line interface for PixelForge operations."""

import argparse, json, logging
from pathlib import Path

from pixelforge.app import PixelForgeApp
from pixelforge.engine import get_onnxruntime_info, get_pillow_info
from pixelforge.errors import ensure_pixelforge_error
from pixelforge.events import LoggingSink
from pixelforge.imaging import open_image
from pixelforge.model_registry import list_models


log = logging.getLogger(__name__)


def _resolve_log_level(args: argparse.Namespace) -> int:
    """Resolve effective logging level from explicit level or verbosity flags."""
    if args.log_level is not None:
        return getattr(logging, args.log_level)

    # Start from INFO, then apply -v and -q offsets with DEBUG/ERROR clamp.
    level = logging.INFO - (10 * int(args.verbose)) + (10 * int(args.quiet))
    return max(logging.DEBUG, min(logging.ERROR, level))


def _configure_logging(args: argparse.Namespace) -> None:
    """Configure stdlib logging using Python default handler routing."""
    effective_level = _resolve_log_level(args)
    root_logger = logging.getLogger()
    root_logger.setLevel(effective_level)
    if not root_logger.handlers:
        logging.basicConfig(level=effective_level)


def _read_mask(mask_fp: Path) -> tuple[bytes, int, int]:
    """Load a mask image as raw grayscale bytes plus its dimensions."""
    mask = open_image(mask_fp).convert("L")
    width, height = mask.size
    return mask.tobytes(), width, height


def _build_app(args: argparse.Namespace) -> PixelForgeApp:
    return PixelForgeApp(
        models_dir=args.models_dir,
        out_dir=args.out_dir,
        manifest_fp=getattr(args, "manifest", None),
        sink=LoggingSink(log),
        logger=log,
    )


def main_cli(args: argparse.Namespace) -> int:
    """Run the CLI command selected by parsed arguments."""
    # Route model catalog commands.
    if args.command == "models" and args.models_command == "list":
        for model in list_models(manifest_fp=args.manifest):
            print(f"{model.id}\t{model.family}\t{model.filename}\t{model.url}")
        return 0

    if args.command == "models" and args.models_command == "status":
        app = _build_app(args)
        print(json.dumps([status.to_dict() for status in app.get_models_status()], indent=2))
        return 0

    if args.command == "models" and args.models_command == "fetch":
        app = _build_app(args)
        print(app.download_model(args.model_id, backend_name=args.backend))
        return 0

    if args.command == "models" and args.models_command == "delete":
        app = _build_app(args)
        app.delete_model(args.model_id)
        log.info(f"deleted model '{args.model_id}'")
        return 0

    # Route inference commands.
    if args.command == "remove-bg":
        print(_build_app(args).remove_background(args.image))
        return 0

    if args.command == "classify":
        results = _build_app(args).classify(args.image)
        print(json.dumps([result.to_dict() for result in results], indent=2))
        return 0

    if args.command == "style":
        print(_build_app(args).style_transfer(args.image, args.style, strength=args.strength))
        return 0

    if args.command == "upscale":
        print(_build_app(args).upscale(args.image, scale=args.scale, use_progress=args.progress))
        return 0

    if args.command == "inpaint":
        mask_data, mask_width, mask_height = _read_mask(args.mask)
        print(_build_app(args).inpaint(args.image, mask_data, mask_width, mask_height))
        return 0

    # Route doctor command.
    if args.command == "doctor":
        ort_info = get_onnxruntime_info()
        pillow_info = get_pillow_info()
        print(f"onnxruntime_installed={ort_info['installed']}")
        print(f"onnxruntime_version={ort_info['version']}")
        print(f"onnxruntime_available_providers={','.join(ort_info['available_providers'])}")
        print(f"pillow_installed={pillow_info['installed']}")
        print(f"pillow_version={pillow_info['version']}")
        return 0

    raise ValueError(f"unsupported command path: {args.command}/{getattr(args, 'models_command', None)}")


def main(argv: list[str] | None = None) -> int:
    """Run the pixelforge CLI and return an exit code."""
    args = _parse_arguments(argv)
    _configure_logging(args)
    try:
        return main_cli(args)
    except Exception as err:
        error = ensure_pixelforge_error(err)
        log.error(f"[{error.kind}] {error}")
        log.debug("unhandled CLI exception", exc_info=True)
        return 1


def _add_manifest_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--manifest",
        type=Path,
        default=None,
        help="Optional path to an alternate models.json manifest.",
    )


def _parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for pixelforge."""
    parser = argparse.ArgumentParser(prog="pixelforge", description="PixelForge command line interface.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease logging verbosity (repeatable).",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
        help="Explicit log level override.",
    )
    parser.add_argument(
        "--models-dir",
        type=Path,
        default=None,
        help="Installed-models directory. Defaults to $PIXELFORGE_MODELS_DIR or the user data dir.",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Directory for result images. Defaults to the system temp directory.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Register model-related commands.
    models_parser = subparsers.add_parser("models", help="Model catalog and provisioning commands.")
    models_subparsers = models_parser.add_subparsers(dest="models_command", required=True)

    models_list_parser = models_subparsers.add_parser("list", help="List catalog models.")
    _add_manifest_argument(models_list_parser)

    models_status_parser = models_subparsers.add_parser("status", help="Report which models are installed.")
    _add_manifest_argument(models_status_parser)

    models_fetch_parser = models_subparsers.add_parser("fetch", help="Download and verify model weights.")
    models_fetch_parser.add_argument("model_id", help="Model id from the catalog.")
    _add_manifest_argument(models_fetch_parser)
    models_fetch_parser.add_argument(
        "--backend",
        choices=("http", "file"),
        default=None,
        help="Override retrieval backend selection.",
    )

    models_delete_parser = models_subparsers.add_parser("delete", help="Delete installed model weights.")
    models_delete_parser.add_argument("model_id", help="Model id from the catalog.")
    _add_manifest_argument(models_delete_parser)

    # Register inference commands.
    remove_bg_parser = subparsers.add_parser("remove-bg", help="Remove the background of an image.")
    remove_bg_parser.add_argument("image", type=Path, help="Input image path.")

    classify_parser = subparsers.add_parser("classify", help="Print the top-5 ImageNet labels.")
    classify_parser.add_argument("image", type=Path, help="Input image path.")

    style_parser = subparsers.add_parser("style", help="Apply a neural style.")
    style_parser.add_argument("image", type=Path, help="Input image path.")
    style_parser.add_argument("--style", required=True, help="Style model id (e.g. style-mosaic).")
    style_parser.add_argument(
        "--strength",
        type=float,
        default=1.0,
        help="Blend strength in [0, 1]; values outside are clamped.",
    )

    upscale_parser = subparsers.add_parser("upscale", help="Upscale an image with tiled super-resolution.")
    upscale_parser.add_argument("image", type=Path, help="Input image path.")
    upscale_parser.add_argument("--scale", type=int, choices=(2, 4), default=4, help="Upscale factor.")
    upscale_parser.add_argument("--progress", action="store_true", help="Show a per-tile progress bar.")

    inpaint_parser = subparsers.add_parser("inpaint", help="Fill the masked region of an image.")
    inpaint_parser.add_argument("image", type=Path, help="Input image path.")
    inpaint_parser.add_argument(
        "--mask",
        type=Path,
        required=True,
        help="Mask image; pixels brighter than 128 are filled.",
    )

    # Register diagnostic command.
    subparsers.add_parser("doctor", help="Report runtime dependency diagnostics.")
    return parser.parse_args(argv)


if __name__ == "__main__":
    raise SystemExit(main())
