"""
Tests for export orchestration in `perplexport.connectors.perplexity.exporter`.
"""
import json
import asyncio
from pathlib import Path

from conftest import FakeBrowser, link
from perplexport.connectors.perplexity import exporter
from perplexport.connectors.perplexity.saver import placeholder_record
from perplexport.connectors.perplexity.schema import (
    Conversation,
    ConversationPayload,
    DoneFile,
    ThreadRecord,
)
from perplexport.connectors.perplexity.store import ConversationStore
from perplexport.utils.cfg.schema import Config

SEARCH = 'a[href*="/search/"]'


class ScriptedSaver:
    """Returns canned records per URL; an exception value is raised instead."""
    def __init__(self, results):
        self.results = results
        self.loaded = []

    async def load_thread_from_url(self, url, timeout_ms=45000):
        self.loaded.append(url)
        result = self.results[url]
        if isinstance(result, Exception):
            raise result
        return result


def _conversation(slug):
    return Conversation(title=slug.upper(), url=link(slug)["url"])


def _record(slug):
    return ThreadRecord(id=slug, payload=ConversationPayload(status="completed", entries=[{"query_str": slug}]))


def test_process_conversations_in_order_and_record_progress(tmp_path: Path):
    conversations = [_conversation(s) for s in ("a", "b", "c")]
    saver = ScriptedSaver({c.url: _record(s) for c, s in zip(conversations, "abc")})
    done = DoneFile()
    done_path = tmp_path / "done.json"

    summary = asyncio.run(exporter.process_conversations(
        conversations, saver, ConversationStore(tmp_path / "out"), done, done_path, pacing_ms=0,
    ))

    assert saver.loaded == [c.url for c in conversations]
    assert summary.saved == [c.url for c in conversations]
    assert json.loads(done_path.read_text(encoding="utf-8")) == {"processedUrls": [c.url for c in conversations]}
    for slug in "abc":
        assert (tmp_path / "out" / f"{slug}.json").exists()
        assert (tmp_path / "out" / f"{slug}.md").exists()


def test_failed_conversation_is_skipped_and_not_marked_done(tmp_path: Path):
    conversations = [_conversation(s) for s in ("a", "b", "c")]
    results = {
        conversations[0].url: _record("a"),
        conversations[1].url: RuntimeError("page crashed"),
        conversations[2].url: _record("c"),
    }
    saver = ScriptedSaver(results)
    done = DoneFile()
    done_path = tmp_path / "done.json"

    summary = asyncio.run(exporter.process_conversations(
        conversations, saver, ConversationStore(tmp_path), done, done_path, pacing_ms=0,
    ))

    assert summary.saved == [conversations[0].url, conversations[2].url]
    assert summary.failed == [conversations[1].url]
    assert done.processed_urls == [conversations[0].url, conversations[2].url]
    assert not (tmp_path / "b.json").exists()
    assert not (tmp_path / "b.md").exists()


def test_placeholder_records_are_saved_and_counted(tmp_path: Path):
    conversation = _conversation("slow")
    saver = ScriptedSaver({conversation.url: placeholder_record(conversation.url)})
    done = DoneFile()

    summary = asyncio.run(exporter.process_conversations(
        [conversation], saver, ConversationStore(tmp_path), done, tmp_path / "done.json", pacing_ms=0,
    ))

    assert summary.placeholders == [conversation.url]
    data = json.loads((tmp_path / "slow.json").read_text(encoding="utf-8"))
    assert data["status"] == "placeholder"
    assert conversation.url in done


def test_options_from_config_with_overrides():
    cfg = Config()
    cfg.export.pacing_ms = 10
    options = exporter.ExportOptions.from_config(cfg, "me@example.com", output_dir=Path("out"), headless=None)

    assert options.email == "me@example.com"
    assert options.output_dir == Path("out")
    assert options.done_file_path == Path("done.json")
    assert options.pacing_ms == 10
    assert options.headless is False
    assert options.converter_path is None


def _options(tmp_path, **kwargs):
    values = dict(
        output_dir=tmp_path / "out",
        done_file_path=tmp_path / "done.json",
        email="me@example.com",
        thread_timeout_ms=100,
        pacing_ms=0,
        settle_ms=0,
        selector_timeout_ms=10,
    )
    values.update(kwargs)
    return exporter.ExportOptions(**values)


def _no_login(monkeypatch):
    calls = []

    async def fake_login(browser, email, base_url):
        calls.append(email)

    monkeypatch.setattr(exporter, "login", fake_login)
    return calls


def test_export_library_end_to_end(tmp_path: Path, monkeypatch):
    logins = _no_login(monkeypatch)
    links = {SEARCH: [link("c"), link("b"), link("a")]}
    browser = FakeBrowser(links)

    summary = asyncio.run(exporter.export_library(_options(tmp_path), browser=browser))

    urls = [link(s)["url"] for s in ("a", "b", "c")]
    assert logins == ["me@example.com"]
    assert browser.started and browser.closed
    assert browser.navigations == ["https://www.perplexity.ai/library"] + urls
    assert summary.saved == urls
    done = json.loads((tmp_path / "done.json").read_text(encoding="utf-8"))
    assert done["processedUrls"] == urls
    saved = json.loads((tmp_path / "out" / "a.json").read_text(encoding="utf-8"))
    assert saved["entries"][0]["query_str"] == "question a"


def test_export_library_rerun_is_idempotent(tmp_path: Path, monkeypatch):
    _no_login(monkeypatch)
    links = {SEARCH: [link("c"), link("b"), link("a")]}

    asyncio.run(exporter.export_library(_options(tmp_path), browser=FakeBrowser(links)))
    second_browser = FakeBrowser(links)
    summary = asyncio.run(exporter.export_library(_options(tmp_path), browser=second_browser))

    assert summary.saved == [] and summary.failed == [] and summary.placeholders == []
    assert second_browser.navigations == ["https://www.perplexity.ai/library"]


def test_silent_thread_becomes_placeholder_and_run_continues(tmp_path: Path, monkeypatch):
    _no_login(monkeypatch)
    links = {SEARCH: [link("b"), link("a")]}
    browser = FakeBrowser(links, silent={"a"})

    summary = asyncio.run(exporter.export_library(_options(tmp_path), browser=browser))

    assert summary.placeholders == [link("a")["url"]]
    assert summary.saved == [link("b")["url"]]


def test_discovery_failure_propagates_and_closes_browser(tmp_path: Path, monkeypatch):
    _no_login(monkeypatch)
    browser = FakeBrowser({})
    browser.matching = set()

    try:
        asyncio.run(exporter.export_library(_options(tmp_path), browser=browser))
    except exporter.PerplexportError as e:
        assert "conversation threads" in str(e)
    else:
        raise AssertionError("expected discovery to fail")
    assert browser.closed
    assert not (tmp_path / "done.json").exists()


def test_convert_runs_hook_after_export(tmp_path: Path, monkeypatch):
    _no_login(monkeypatch)
    converter = tmp_path / "conversation_converter.py"
    converter.write_text("print('ok')\n", encoding="utf-8")
    calls = []

    async def fake_conversion(output_dir, converter_path, convert_output_dir=None):
        calls.append((Path(output_dir), Path(converter_path), convert_output_dir))
        return Path(output_dir, "logseq-notes")

    monkeypatch.setattr(exporter.hook, "run_post_export_conversion", fake_conversion)
    options = _options(tmp_path, convert=True, converter_path=converter)

    asyncio.run(exporter.export_library(options, browser=FakeBrowser({SEARCH: [link("a")]})))

    assert calls == [(tmp_path / "out", converter, None)]


def test_convert_without_converter_is_skipped(tmp_path: Path, monkeypatch):
    _no_login(monkeypatch)
    monkeypatch.setattr(exporter.hook, "find_converter", lambda: None)

    async def boom(*_args, **_kwargs):
        raise AssertionError("conversion should not run")

    monkeypatch.setattr(exporter.hook, "run_post_export_conversion", boom)
    options = _options(tmp_path, convert=True)

    summary = asyncio.run(exporter.export_library(options, browser=FakeBrowser({SEARCH: [link("a")]})))
    assert summary.saved == [link("a")["url"]]
