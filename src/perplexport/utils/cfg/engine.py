"""
Configuration engine: load dataclass defaults first, then merge INI overrides.
On first run, a template `perplexport.ini` mirroring the dataclass defaults is
written under `config/` in the working directory so the user has something to
tweak.
"""

from pathlib import Path
from typing import Optional
from dataclasses import asdict
from configparser import ConfigParser

from perplexport.utils.cfg.schema import Config


# Paths
INI_FILE = Path("config", "perplexport.ini")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


# Helpers
def _cast(template_value, raw: str):
    """Cast the raw INI string back to the dataclass field type."""
    t = type(template_value)
    if t is bool:
        value = raw.strip().lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise ValueError(f"Not a boolean: {raw!r}")
    return Path(raw) if isinstance(template_value, Path) else t(raw)

def _create_config(cfg: Config, path: Path) -> None:
    """Write a template INI that mirrors the dataclass defaults."""
    path.parent.mkdir(parents=True, exist_ok=True)
    cp = ConfigParser()
    for section, mapping in asdict(cfg).items():
        cp[section] = {k: str(v) for k, v in mapping.items()}
    with path.open("w", encoding="utf-8") as f:
        cp.write(f)


# Public API
def load(path: Optional[Path] = None) -> Config:
    """Load configuration from INI file and return Config object."""
    cfg = Config()
    ini = path or INI_FILE

    # Create template on first run so users have something to tweak
    if not ini.exists():
        _create_config(cfg, ini)

    cp = ConfigParser()
    cp.read(ini, encoding="utf-8")

    for sect in cp.sections():
        if not hasattr(cfg, sect):
            continue
        dst = getattr(cfg, sect)
        for key, raw in cp.items(sect):
            if hasattr(dst, key):
                setattr(dst, key, _cast(getattr(dst, key), raw))
    return cfg
