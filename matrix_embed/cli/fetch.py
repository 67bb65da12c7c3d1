"""One-shot media fetch.

Downloads a URL through the full attachment pipeline and writes the
result (and its thumbnail, when one was rendered) to a directory.  Handy
for checking how a link will embed without running the bot.

Usage::

    matrix-embed-fetch https://example.com/clip.mkv
    matrix-embed-fetch -o out/ --thumbnail-width 320 https://example.com/photo.jpg
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from matrix_embed.runtime.config.settings import cfg
from matrix_embed.runtime.media.attachment import AttachmentAssembler, AttachmentResult
from matrix_embed.runtime.media.errors import MediaError
from matrix_embed.runtime.messaging.caption import Caption

logger = logging.getLogger(__name__)
console = Console()

THUMBNAIL_SUFFIX = ".thumbnail.jpg"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="matrix-embed-fetch",
        description="Download a URL and build the attachment a chat embed would upload.",
    )
    parser.add_argument("url", help="The media URL to fetch.")
    parser.add_argument(
        "-o", "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory to write the attachment and thumbnail into (default: current).",
    )
    parser.add_argument(
        "--max-file-size",
        type=int,
        default=None,
        help="Byte budget for the download (default: MAX_FILE_SIZE env / config).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Download timeout in seconds (default: DOWNLOAD_TIMEOUT_SECONDS).",
    )
    parser.add_argument(
        "--thumbnail-width",
        type=int,
        default=None,
        help="Thumbnail width in pixels (default: THUMBNAIL_WIDTH).",
    )
    parser.add_argument(
        "--caption",
        type=str,
        default=None,
        help="Plain-text caption to attach to the result.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )
    return parser


def _summary_table(result: AttachmentResult, written: list[Path]) -> Table:
    table = Table(title="Attachment", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("filename", result.filename)
    table.add_row("kind", result.kind)
    table.add_row("mime type", result.mime_type)
    table.add_row("size", f"{result.size} bytes")
    if result.width is not None and result.height is not None:
        table.add_row("dimensions", f"{result.width}x{result.height}")
    if result.placeholder:
        table.add_row("placeholder", result.placeholder)
    if result.thumbnail:
        thumb = result.thumbnail
        table.add_row("thumbnail", f"{thumb.width}x{thumb.height}, {thumb.size} bytes")
    if result.caption:
        table.add_row("caption", result.caption.body)
    for path in written:
        table.add_row("wrote", str(path))
    return table


def _thumbnail_filename(filename: str) -> str:
    return f"{filename}{THUMBNAIL_SUFFIX}"


def _write_outputs(result: AttachmentResult, output_dir: Path) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / result.filename
    target.write_bytes(result.data)
    written = [target]
    if result.thumbnail:
        thumb_path = output_dir / _thumbnail_filename(result.filename)
        thumb_path.write_bytes(result.thumbnail.data)
        written.append(thumb_path)
    return written


async def _run(args: argparse.Namespace) -> int:
    byte_budget = args.max_file_size if args.max_file_size is not None else cfg.max_file_size
    timeout = args.timeout if args.timeout is not None else cfg.download_timeout
    caption = Caption(body=args.caption, html_body="") if args.caption else None

    assembler = AttachmentAssembler(thumbnail_width=args.thumbnail_width)
    try:
        result = await assembler.process_downloaded_url(args.url, byte_budget, timeout, caption)
    except MediaError as exc:
        logger.debug("[cli.fetch] pipeline failed", exc_info=True)
        console.print(f"[red]Error:[/red] {exc}")
        return 1

    try:
        written = _write_outputs(result, args.output_dir)
    except OSError as exc:
        console.print(f"[red]Error:[/red] could not write output: {exc}")
        return 1

    console.print(_summary_table(result, written))
    return 0


def main() -> None:
    """CLI entry point for ``matrix-embed-fetch``."""
    args = _build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s  %(name)s  %(levelname)s  %(message)s",
    )

    try:
        code = asyncio.run(_run(args))
    except KeyboardInterrupt:
        code = 130

    sys.exit(code)


if __name__ == "__main__":
    main()
