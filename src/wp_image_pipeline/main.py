"""Main module for the WP image pipeline CLI."""

import argparse
import sys
import time
from pathlib import Path
from typing import List

import uvicorn

from .api import create_app
from .core import (
    BatchOperationContextManager,
    ImagesPipelineError,
    PipelineSettings,
    ProcessingResult,
    ProcessOptions,
    enable_debug_logging,
    get_logger,
)
from .core.factories import select_batch_processor
from .core.services import BatchItem
from .core.transforms import ImageTransformService

logger = get_logger("cli")


def options_from_args(args: argparse.Namespace) -> ProcessOptions:
    """Translate CLI flags into batch options."""
    return ProcessOptions(
        action=args.action,
        copyright=args.copyright,
        author=args.author,
        remove_gps=args.remove_gps,
        optimize=args.optimize,
        max_width=args.max_width,
        quality=args.quality,
        keep_color_profile=args.keep_color_profile,
        scramble_type=args.scramble_type,
        scramble_intensity=args.scramble_intensity,
        watermark_text=args.watermark_text,
        watermark_position=args.watermark_position,
    )


def process_local_files(
    paths: List[str],
    output_dir: str,
    options: ProcessOptions,
    settings: PipelineSettings,
) -> List[ProcessingResult]:
    """
    Run the transform engine over local files and write results to ``output_dir``.

    Each file is isolated: an unreadable or undecodable file is reported as a
    failed result and the remaining files are still processed.
    """
    transformer = ImageTransformService(settings.software_tag)
    destination = Path(output_dir)
    destination.mkdir(parents=True, exist_ok=True)

    def process_one(item: BatchItem) -> ProcessingResult:
        start_time = time.time()
        source = Path(item.image_id)
        result = ProcessingResult(image_id=item.image_id)
        try:
            output = transformer.transform(source.read_bytes(), options)
            target = destination / f"{source.stem}.{output.extension}"
            target.write_bytes(output.data)
            result.success = True
            result.message = "Processed successfully"
            result.destination = str(target)
        except (ImagesPipelineError, OSError) as e:
            result.error = str(e)
        result.processing_time = time.time() - start_time
        return result

    process_batch = select_batch_processor(settings.max_workers)
    items = [BatchItem(image_id=path) for path in paths]

    with BatchOperationContextManager(f"Local {options.action.value}") as batch_context:
        results = process_batch(items, process_one)
        for result in results:
            if not result.success:
                batch_context.add_error(result.error, result.image_id)
    return results


def main() -> None:
    """
    Entry point for the command-line interface (CLI) of the WP Image Pipeline.

    Commands:
        process: transform local image files into an output directory
        serve: run the HTTP API with uvicorn
        version: print version information
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="wp-image-pipeline",
        description="WP Image Pipeline - image metadata and scrambling for WordPress content",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Strip metadata from local images
  wp-image-pipeline process photo.jpg banner.png --output-dir out --action strip

  # Add copyright and optimize for the web
  wp-image-pipeline process photo.jpg --output-dir out --action add \\
                            --copyright "(c) ACME" --optimize --max-width 1200

  # Run the API
  wp-image-pipeline serve --port 8000
        """,
    )

    subparsers: argparse._SubParsersAction = parser.add_subparsers(
        dest="command", help="Available commands"
    )

    # Process subcommand
    process_parser: argparse.ArgumentParser = subparsers.add_parser(
        "process", help="Process local image files"
    )
    process_parser.add_argument("inputs", nargs="+", help="Image files to process")
    process_parser.add_argument(
        "--output-dir", required=True, help="Directory for processed images"
    )
    process_parser.add_argument(
        "--action",
        required=True,
        choices=["add", "strip", "update", "scramble"],
        help="Metadata action to apply",
    )
    process_parser.add_argument("--copyright", default=None, help="Copyright text")
    process_parser.add_argument("--author", default=None, help="Author name")
    process_parser.add_argument(
        "--remove-gps", action="store_true", help="Remove GPS tags"
    )
    process_parser.add_argument(
        "--optimize", action="store_true", help="Resize and recompress for the web"
    )
    process_parser.add_argument(
        "--max-width", type=int, default=None, help="Maximum width when optimizing"
    )
    process_parser.add_argument(
        "--quality", type=int, default=85, help="Encoder quality (default: 85)"
    )
    process_parser.add_argument(
        "--keep-color-profile",
        action="store_true",
        help="Keep the embedded colour profile instead of converting to sRGB",
    )
    process_parser.add_argument(
        "--scramble-type",
        default=None,
        choices=["pixel-shift", "watermark", "blur-regions", "color-shift", "noise"],
        help="Scrambling algorithm (required for --action scramble)",
    )
    process_parser.add_argument(
        "--scramble-intensity", type=int, default=50, help="0-100 (default: 50)"
    )
    process_parser.add_argument(
        "--watermark-text", default="CONFIDENTIAL", help="Watermark text"
    )
    process_parser.add_argument(
        "--watermark-position",
        default="center",
        choices=["center", "top-left", "top-right", "bottom-left", "bottom-right"],
        help="Watermark anchor (default: center)",
    )
    process_parser.add_argument(
        "--workers", type=int, default=None, help="Worker threads (default: from env)"
    )
    process_parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )

    # Serve subcommand
    serve_parser: argparse.ArgumentParser = subparsers.add_parser(
        "serve", help="Run the HTTP API"
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # Version subcommand
    subparsers.add_parser("version", help="Show version information")

    # Parse arguments
    args: argparse.Namespace = parser.parse_args()

    if args.command == "process":
        if args.debug:
            enable_debug_logging()
        try:
            settings = PipelineSettings.from_env()
            if args.workers is not None:
                settings = settings.model_copy(update={"max_workers": max(1, args.workers)})
            options = options_from_args(args)
        except (ImagesPipelineError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(2)
            return

        results = process_local_files(args.inputs, args.output_dir, options, settings)
        processed = sum(1 for r in results if r.success)
        for result in results:
            if result.success:
                print(f"OK   {result.image_id} -> {result.destination}")
            else:
                print(f"FAIL {result.image_id}: {result.error}")
        print(f"Processed {processed} of {len(results)} images")
        sys.exit(0 if processed == len(results) else 1)

    elif args.command == "serve":
        uvicorn.run(create_app(), host=args.host, port=args.port)

    elif args.command == "version":
        print("WP Image Pipeline CLI")
        print("Version 0.1.0")
        print("Image metadata and scrambling for WordPress content")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
