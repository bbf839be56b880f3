"""Display labels and re-check ordering per AI provider.

The registry file is optional YAML::

    providers:
      qwen:
        label: Qwen-VL
      kimi:
        label: Kimi
        prefer_latest: true
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional

import yaml  # type: ignore[import-untyped]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderRegistry:
    labels: Dict[str, str] = field(default_factory=dict)
    prefer_latest: FrozenSet[str] = frozenset()

    def label_for(self, provider: Optional[str]) -> Optional[str]:
        if not provider:
            return None
        return self.labels.get(provider) or provider


def _split_names(raw: Iterable[Any]) -> FrozenSet[str]:
    return frozenset(str(x).strip().casefold() for x in raw if str(x or "").strip())


def parse_provider_list(raw: str) -> FrozenSet[str]:
    return _split_names(str(raw or "").split(","))


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        _log.warning("provider registry %s is not a mapping; ignoring", path)
        return {}
    return data


@lru_cache(maxsize=8)
def _load_registry_cached(path_str: str) -> Dict[str, Any]:
    return _load_yaml(Path(path_str))


def build_provider_registry(
    path: Optional[Path] = None,
    *,
    prefer_latest: Iterable[str] = (),
) -> ProviderRegistry:
    data = _load_registry_cached(str(path)) if path else {}
    providers = data.get("providers") if isinstance(data.get("providers"), dict) else {}
    labels: Dict[str, str] = {}
    latest = set(_split_names(prefer_latest))
    for name, cfg in providers.items():
        key = str(name or "").strip().casefold()
        if not key:
            continue
        cfg = cfg if isinstance(cfg, dict) else {}
        label = str(cfg.get("label") or "").strip()
        if label:
            labels[key] = label
        if cfg.get("prefer_latest") is True:
            latest.add(key)
    return ProviderRegistry(labels=labels, prefer_latest=frozenset(latest))
