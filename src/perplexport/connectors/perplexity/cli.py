#!/usr/bin/env python3
"""Command-line entry point: ``perplexport -e you@example.com``."""
import sys
import asyncio
import argparse
from pathlib import Path
from typing import List, Optional

from perplexport import __version__
from perplexport.utils.cfg import engine
from perplexport.utils.logs import report
from perplexport.utils.style import ansi
from perplexport.connectors.perplexity.schema import DiscoveryMode
from perplexport.connectors.perplexity.exporter import ExportOptions, export_library
from perplexport.connectors.perplexity._playwright_setup import ensure_chromium_installed

logger = report.settings(__file__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="perplexport",
        description="Export Perplexity conversations as JSON and markdown files",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-e", "--email", required=True, help="Perplexity email")
    parser.add_argument("-o", "--output", type=Path, help="Output directory for conversations")
    parser.add_argument(
        "-d", "--done-file", type=Path,
        help="Done file location (tracks which URLs have been downloaded before)",
    )
    parser.add_argument(
        "--convert", action="store_true",
        help="Convert exported conversations to Logseq format when the export finishes",
    )
    parser.add_argument("--converter-path", type=Path, help="Path to conversation_converter.py (auto-detected if omitted)")
    parser.add_argument("--logseq-output", type=Path, help="Output directory for Logseq notes (defaults to <output>/logseq-notes)")
    parser.add_argument("--headless", action="store_true", default=None, help="Run browser headless")
    parser.add_argument("--fresh", action="store_true", help="Ignore any saved session and log in again")
    parser.add_argument("--no-storage-state", action="store_true", help="Do not load or save the browser session")
    parser.add_argument(
        "--mode", choices=[m.value for m in DiscoveryMode],
        help="short_circuit stops scrolling at the first exported conversation; exhaustive scrolls to the end",
    )
    parser.add_argument("--config", type=Path, help="INI file with defaults (config/perplexport.ini)")
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> ExportOptions:
    """Merge INI config with CLI flags; flags win."""
    cfg = engine.load(args.config)
    return ExportOptions.from_config(
        cfg,
        args.email,
        output_dir=args.output,
        done_file_path=args.done_file,
        convert=args.convert or None,
        converter_path=args.converter_path,
        logseq_output_dir=args.logseq_output,
        headless=args.headless,
        fresh=args.fresh or None,
        use_storage_state=False if args.no_storage_state else None,
        mode=DiscoveryMode(args.mode) if args.mode else None,
    )


async def main(args: argparse.Namespace) -> None:
    """Main async function."""
    options = build_options(args)

    print(f"🚀 {ansi.cyan}Perplexity library export{ansi.reset}")
    print(f"📁 Output: {ansi.yellow}{Path(options.output_dir).absolute()}{ansi.reset}")
    print(f"📝 Detailed logs: {ansi.grey}{Path(logger.handlers[0].baseFilename).parent}{ansi.reset}\n")
    logger.info("Export started (output=%s, done_file=%s, mode=%s)",
                options.output_dir, options.done_file_path, options.mode.value)

    await export_library(options)


def run_main(argv: Optional[List[str]] = None) -> None:
    """Console-script entry point; exits non-zero on unrecoverable errors."""
    args = parse_args(argv)
    try:
        ensure_chromium_installed()
        asyncio.run(main(args))
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")
        logger.warning("Export interrupted by user")
        sys.exit(130)
    except Exception as e:  # pylint: disable=broad-except
        print(f"{ansi.red}Fatal error:{ansi.reset} {e}")
        logger.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run_main()
