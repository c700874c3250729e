"""
Export orchestration: discover new library conversations, load each one
through the correlator, persist it and record it in the done file.
"""
import asyncio
import traceback
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, List, Optional

from perplexport.utils.logs import report
from perplexport.utils.style import ansi
from perplexport.utils.cfg.schema import Config
from perplexport.connectors.perplexity import hook
from perplexport.connectors.perplexity.login import login
from perplexport.connectors.perplexity.errors import PerplexportError
from perplexport.connectors.perplexity.browser import PerplexityBrowser
from perplexport.connectors.perplexity.library import get_conversations
from perplexport.connectors.perplexity.saver import ConversationSaver
from perplexport.connectors.perplexity.schema import Conversation, DiscoveryMode, DoneFile
from perplexport.connectors.perplexity.store import (
    ConversationStore,
    load_done_file,
    save_done_file,
)

logger = report.settings(__file__)


@dataclass
class ExportOptions:
    """Flat settings for one export run."""
    output_dir: Path
    done_file_path: Path
    email: str
    convert: bool = False
    converter_path: Optional[Path] = None
    logseq_output_dir: Optional[Path] = None
    base_url: str = "https://www.perplexity.ai"
    headless: bool = False
    fresh: bool = False
    use_storage_state: bool = True
    storage_state_file: Path = Path("config/perplexity/storage_state.json")
    mode: DiscoveryMode = DiscoveryMode.SHORT_CIRCUIT
    thread_timeout_ms: int = 45000
    pacing_ms: int = 2000
    settle_ms: int = 2000
    selector_timeout_ms: int = 5000
    max_attempts: int = 100
    max_stall: int = 5

    @classmethod
    def from_config(cls, cfg: Config, email: str, **overrides) -> "ExportOptions":
        """Build options from loaded config; non-None *overrides* win."""
        values = dict(
            output_dir=cfg.paths.output_dir,
            done_file_path=cfg.paths.done_file,
            email=email,
            converter_path=Path(cfg.paths.converter) if cfg.paths.converter else None,
            logseq_output_dir=Path(cfg.paths.logseq_output) if cfg.paths.logseq_output else None,
            base_url=cfg.browser.base_url,
            headless=cfg.browser.headless,
            use_storage_state=cfg.browser.use_storage_state,
            storage_state_file=cfg.browser.storage_state,
            mode=DiscoveryMode(cfg.export.discovery_mode),
            thread_timeout_ms=cfg.export.thread_timeout_ms,
            pacing_ms=cfg.export.pacing_ms,
            settle_ms=cfg.export.settle_ms,
            selector_timeout_ms=cfg.export.selector_timeout_ms,
            max_attempts=cfg.export.max_attempts,
            max_stall=cfg.export.max_stall,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ExportSummary:
    """What happened to each conversation in a run."""
    saved: List[str] = field(default_factory=list)
    placeholders: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


async def process_conversations(
    conversations: List[Conversation],
    saver: ConversationSaver,
    store: ConversationStore,
    done_file: DoneFile,
    done_file_path: Path,
    *,
    timeout_ms: int = 45000,
    pacing_ms: int = 2000,
) -> ExportSummary:
    """Export *conversations* in order, one at a time.

    A failing conversation is logged and skipped: nothing is written for it
    and it stays out of the done file. The pacing delay applies after every
    conversation either way.
    """
    summary = ExportSummary()
    total = len(conversations)

    for i, conversation in enumerate(conversations, start=1):
        print(f"\n[{i}/{total}] Processing: {ansi.cyan}{conversation.title}{ansi.reset}")
        print(f"URL: {ansi.grey}{conversation.url}{ansi.reset}")
        logger.info("[%d/%d] Processing %s (%s)", i, total, conversation.title, conversation.url)

        try:
            record = await saver.load_thread_from_url(conversation.url, timeout_ms=timeout_ms)

            json_path, md_path = store.save(record)
            print(f"{ansi.green}✓{ansi.reset} Saved JSON: {json_path.name}")
            print(f"{ansi.green}✓{ansi.reset} Saved Markdown: {md_path.name}")

            done_file.add(conversation.url)
            # Save after each conversation in case of interruption
            save_done_file(done_file, done_file_path)
            print(f"{ansi.green}✓{ansi.reset} Progress saved")

            if record.payload.is_placeholder:
                summary.placeholders.append(conversation.url)
            else:
                summary.saved.append(conversation.url)

        except Exception as e:  # pylint: disable=broad-except
            print(f"{ansi.red}✗ Error processing conversation:{ansi.reset} {e}")
            logger.error("Error processing %s: %s\n%s", conversation.url, e, traceback.format_exc())
            summary.failed.append(conversation.url)

        await asyncio.sleep(pacing_ms / 1000)

    return summary


async def _convert(options: ExportOptions) -> None:
    converter = options.converter_path or hook.find_converter()
    if converter is None or not hook.check_converter_exists(converter):
        print(f"⚠️  {ansi.yellow}Converter not found, skipping Logseq conversion{ansi.reset}")
        logger.warning("Converter not found (configured: %s)", options.converter_path)
        return
    try:
        await hook.run_post_export_conversion(options.output_dir, converter, options.logseq_output_dir)
    except (PerplexportError, OSError) as e:
        print(f"⚠️  Conversion failed: {e}")
        logger.error("Post-export conversion failed: %s", e)


async def export_library(options: ExportOptions, browser: Optional[Any] = None) -> ExportSummary:
    """Run a full export. Discovery and login failures propagate."""
    Path(options.output_dir).mkdir(parents=True, exist_ok=True)

    done_file = load_done_file(options.done_file_path)
    print(f"Loaded {ansi.yellow}{len(done_file)}{ansi.reset} processed URLs from done file")
    logger.info("Loaded %d processed URLs from %s", len(done_file), options.done_file_path)

    if browser is None:
        browser = PerplexityBrowser(options.storage_state_file if options.use_storage_state else None)

    try:
        await browser.start(
            headless=options.headless,
            use_storage_state=options.use_storage_state,
            fresh=options.fresh,
        )
        await login(browser, options.email, options.base_url)

        conversations = await get_conversations(
            browser,
            done_file,
            base_url=options.base_url,
            mode=options.mode,
            selector_timeout_ms=options.selector_timeout_ms,
            max_attempts=options.max_attempts,
            max_stall=options.max_stall,
            settle_ms=options.settle_ms,
        )
        print(f"Found {ansi.green}{len(conversations)}{ansi.reset} new conversations to process")
        logger.info("Found %d new conversations", len(conversations))

        saver = ConversationSaver(browser)
        await saver.initialize()

        summary = await process_conversations(
            conversations,
            saver,
            ConversationStore(options.output_dir),
            done_file,
            options.done_file_path,
            timeout_ms=options.thread_timeout_ms,
            pacing_ms=options.pacing_ms,
        )
    finally:
        await browser.close()

    print(
        f"\nDone: {ansi.green}{len(summary.saved)}{ansi.reset} saved, "
        f"{ansi.yellow}{len(summary.placeholders)}{ansi.reset} placeholders, "
        f"{ansi.red}{len(summary.failed)}{ansi.reset} failed"
    )
    logger.info(
        "Export finished: %d saved, %d placeholders, %d failed",
        len(summary.saved), len(summary.placeholders), len(summary.failed),
    )

    if options.convert:
        await _convert(options)

    return summary
