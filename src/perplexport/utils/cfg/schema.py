"""
This file is used to define the schema for the config file.
"""
from pathlib import Path
from dataclasses import dataclass, field


@dataclass
class Paths:
    """Where exports, bookkeeping and the optional converter live."""
    output_dir:    Path = Path(".")
    done_file:     Path = Path("done.json")
    converter:     str  = ""
    logseq_output: str  = ""


@dataclass
class Browser:
    """Browser session settings."""
    base_url:          str  = "https://www.perplexity.ai"
    headless:          bool = False
    use_storage_state: bool = True
    storage_state:     Path = Path("config/perplexity/storage_state.json")


@dataclass
class Export:
    """Timing and termination knobs for discovery and acquisition."""
    thread_timeout_ms:   int = 45000
    pacing_ms:           int = 2000
    settle_ms:           int = 2000
    selector_timeout_ms: int = 5000
    max_attempts:        int = 100
    max_stall:           int = 5
    discovery_mode:      str = "short_circuit"


@dataclass
class Config:
    """Main configuration container aggregating all sections."""
    paths:   Paths   = field(default_factory=Paths)
    browser: Browser = field(default_factory=Browser)
    export:  Export  = field(default_factory=Export)
