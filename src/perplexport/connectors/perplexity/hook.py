"""
Optional post-export step: convert the exported markdown into Logseq notes
with an external ``conversation_converter.py`` script.
"""
import os
import asyncio
from pathlib import Path
from typing import Optional, Sequence

from perplexport.utils.cli import shell
from perplexport.utils.logs import report
from perplexport.utils.style import ansi
from perplexport.connectors.perplexity.errors import PerplexportError

logger = report.settings(__file__)

CONVERTER_NAME = "conversation_converter.py"
COMMON_CONVERTER_PATHS = (
    f"../conversation-to-logseq/{CONVERTER_NAME}",
    f"../../conversation-to-logseq/{CONVERTER_NAME}",
    f"/usr/local/lib/node_modules/perplexport/{CONVERTER_NAME}",
    f"~/Development/Github/conversation-to-logseq/{CONVERTER_NAME}",
)


def check_converter_exists(converter_path) -> bool:
    return Path(os.path.expanduser(str(converter_path))).is_file()


def find_converter(candidates: Sequence[str] = COMMON_CONVERTER_PATHS) -> Optional[Path]:
    """Return the first existing converter among *candidates*, ``~`` expanded."""
    for candidate in candidates:
        path = Path(os.path.expanduser(candidate))
        if path.is_file():
            logger.info("Found converter at %s", path)
            return path
    return None


def conversion_command(output_dir: Path, converter_path: Path, logseq_output_dir: Path):
    return [
        "python3",
        str(converter_path),
        "--input-dir", str(output_dir),
        "--output-dir", str(logseq_output_dir),
        "--quiet",
    ]


async def run_post_export_conversion(
    output_dir: Path,
    converter_path: Path,
    convert_output_dir: Optional[Path] = None,
) -> Path:
    """Run the converter over *output_dir* and return where the notes went.

    Raises PerplexportError when the converter exits non-zero.
    """
    print(f"\n📝 {ansi.cyan}Running post-export conversion to Logseq format...{ansi.reset}")

    logseq_output_dir = Path(convert_output_dir) if convert_output_dir else Path(output_dir, "logseq-notes")
    logseq_output_dir.mkdir(parents=True, exist_ok=True)

    command = conversion_command(Path(output_dir), Path(converter_path), logseq_output_dir)
    result = await asyncio.to_thread(shell.run, command)

    if result["returncode"] != 0:
        print(f"❌ {ansi.red}Conversion failed with exit code {result['returncode']}{ansi.reset}")
        raise PerplexportError(f"Conversion process exited with code {result['returncode']}")

    print(f"✅ Conversion complete! Logseq notes saved to: {ansi.cyan}{logseq_output_dir}{ansi.reset}")
    logger.info("Logseq notes written to %s", logseq_output_dir)
    return logseq_output_dir
