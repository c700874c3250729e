"""Writes exported threads to disk and keeps the done file."""
import json
from pathlib import Path
from typing import Tuple

from perplexport.utils.logs import report
from perplexport.connectors.perplexity.render import render_conversation
from perplexport.connectors.perplexity.schema import DoneFile, ThreadRecord

logger = report.settings(__file__)


def load_done_file(path: Path) -> DoneFile:
    """Load the done file, or an empty one when it does not exist yet."""
    path = Path(path)
    if not path.exists():
        logger.info("No done file at %s, starting fresh", path)
        return DoneFile()
    data = json.loads(path.read_text(encoding="utf-8"))
    return DoneFile.from_dict(data)


def save_done_file(done_file: DoneFile, path: Path) -> None:
    """Rewrite the whole done file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(done_file.to_dict(), indent=2), encoding="utf-8")
    logger.debug("Saved %d processed URLs to %s", len(done_file), path)


class ConversationStore:
    """Writes ``<id>.json`` and ``<id>.md`` for each thread into one directory."""
    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def save(self, record: ThreadRecord) -> Tuple[Path, Path]:
        self.output_dir.mkdir(parents=True, exist_ok=True)

        json_path = self.output_dir / f"{record.id}.json"
        json_path.write_text(
            json.dumps(record.payload.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

        md_path = self.output_dir / f"{record.id}.md"
        md_path.write_text(render_conversation(record.payload), encoding="utf-8")

        logger.info("Saved thread %s to %s and %s", record.id, json_path.name, md_path.name)
        return json_path, md_path
