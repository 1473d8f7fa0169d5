"""LLM credential resolution."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping


def load_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=value`` lines; missing files yield an empty mapping."""
    out: dict[str, str] = {}
    if not path.exists():
        return out
    for line in path.read_text(encoding="utf-8").splitlines():
        item = line.strip()
        if item.startswith("export "):
            item = item[len("export "):].lstrip()
        if not item or item.startswith("#") or "=" not in item:
            continue
        key, raw_val = item.split("=", 1)
        val = raw_val.strip()
        if len(val) >= 2 and val[0] == val[-1] and val[0] in {'"', "'"}:
            val = val[1:-1]
        out[key.strip()] = val
    return out


def _resolve_setting(keys: list[str], env_values: Mapping[str, str]) -> str:
    for key in keys:
        env_val = (os.getenv(key) or "").strip()
        if env_val:
            return env_val
        file_val = (env_values.get(key) or "").strip()
        if file_val:
            return file_val
    return ""


@dataclass(frozen=True, slots=True)
class LLMAuthSettings:
    api_key: str
    base_url: str

    @property
    def messages_endpoint(self) -> str:
        if self.base_url.endswith("/v1/messages"):
            return self.base_url
        return f"{self.base_url}/v1/messages"


def resolve_llm_auth(
    env_values: Mapping[str, str] | None = None,
    *,
    default_base_url: str = "https://api.anthropic.com",
) -> LLMAuthSettings:
    values = env_values or {}
    api_key = _resolve_setting(["ANTHROPIC_API_KEY", "ANTHROPIC_AUTH_TOKEN"], values)
    base_url = _resolve_setting(["ANTHROPIC_BASE_URL"], values) or default_base_url
    return LLMAuthSettings(api_key=api_key.strip(), base_url=base_url.strip().rstrip("/"))
