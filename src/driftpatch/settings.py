from __future__ import annotations

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import json5  # type: ignore
import yaml
from pydantic import BaseModel, Field, field_validator

# Variable replacement pattern.
# Supports:
#   - ${NAME}
#   - ${env:NAME}
# Ignores '$${NAME}' so it can be used to escape a literal '${NAME}'.
VAR_PATTERN = re.compile(
    r"(?<!\$)\$\{([A-Za-z_][A-Za-z0-9_]*(?::[A-Za-z_][A-Za-z0-9_]*)?)\}"
)

DEFAULT_SIMILARITY_THRESHOLD = 0.66
DEFAULT_CONTEXT_LINES = 3

_YAML_SUFFIXES = (".yaml", ".yml")
_JSON_SUFFIXES = (".json", ".json5", ".jsonc")


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"
    disabled = "disabled"


class LoggingSettings(BaseModel):
    # Level for the driftpatch logger if not overridden.
    default_level: LogLevel = LogLevel.info
    # Mapping of logger name -> level override (e.g., {"driftpatch": "debug"})
    enabled_loggers: Dict[str, LogLevel] = Field(default_factory=dict)


class ChunkMode(str, Enum):
    # A chunk whose context cannot be located fails the whole file
    STRICT = "strict"
    # Unlocatable chunks are skipped with a warning
    BEST_EFFORT = "best_effort"


class ApplyOptions(BaseModel):
    dry_run: bool = False
    backup: bool = False
    chunk_mode: ChunkMode = ChunkMode.STRICT
    # Re-escape replacement text when the replaced text used \" \' or \`
    preserve_escaping: bool = False
    # Lines of surrounding context used to anchor each chunk.
    context_lines: int = Field(default=DEFAULT_CONTEXT_LINES, ge=0)
    similarity_threshold: float = Field(
        default=DEFAULT_SIMILARITY_THRESHOLD, ge=0.0, le=1.0
    )

    @field_validator("chunk_mode", mode="before")
    @classmethod
    def _normalize_mode(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v


class Settings(BaseModel):
    apply: ApplyOptions = Field(default_factory=ApplyOptions)
    logging: Optional[LoggingSettings] = Field(default=None)


class _Variables:
    """
    Placeholder resolution for config values.

    A string that is exactly one placeholder takes the variable's value with
    its type (bool, number, list...). Placeholders embedded in longer strings
    are rendered as text. Unknown names stay as written.
    """

    def __init__(self, values: Dict[str, Any]) -> None:
        self._values = values

    def lookup(self, name: str) -> Tuple[bool, Any]:
        if name.startswith("env:"):
            value = os.getenv(name[len("env:") :]) if len(name) > 4 else None
            return value is not None, value
        return name in self._values, self._values.get(name)

    def _render(self, m: re.Match) -> str:
        found, value = self.lookup(m.group(1))
        if not found:
            return m.group(0)
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return str(value)

    def apply(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: self.apply(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self.apply(v) for v in obj]
        if not isinstance(obj, str):
            return obj
        whole = VAR_PATTERN.fullmatch(obj)
        if whole is not None:
            found, value = self.lookup(whole.group(1))
            return value if found else obj
        # '$${' is the escape for a literal '${'
        return VAR_PATTERN.sub(self._render, obj).replace("$${", "${")


def _read_config(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    if suffix not in _YAML_SUFFIXES and suffix not in _JSON_SUFFIXES:
        raise ValueError(f"Unsupported config file extension: {suffix}")
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) if suffix in _YAML_SUFFIXES else json5.loads(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: root configuration must be a mapping/object")
    return dict(data)


def load_settings(path: Union[str, Path]) -> Settings:
    """
    Load Settings from a YAML or JSON5 file.

    A top-level `variables` mapping feeds `${NAME}` placeholders anywhere in
    the document; `${env:NAME}` reads the environment. Variables may use
    `${env:...}` themselves but not other variables.
    """
    data = _read_config(Path(path))
    declared = data.pop("variables", None) or {}
    if not isinstance(declared, dict):
        raise TypeError("variables must be a mapping/object")

    env_only = _Variables({})
    variables = _Variables(
        {name: env_only.apply(v) for name, v in declared.items() if isinstance(name, str)}
    )
    return Settings.model_validate(variables.apply(data))
