"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.settings import CONFIG_PATH, DEFAULT_CONFIG, SyncConfig


@dataclass
class AppConfig:
    """User overrides persisted to ``config.json``."""

    backend: Optional[str] = None
    spreadsheet_id: Optional[str] = None
    calendar_id: Optional[str] = None
    timezone: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    strict_versions: Optional[bool] = None
    calendar_timeout_sec: Optional[float] = None
    db_path: Optional[str] = None


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    categories = data.get("categories") or []
    return AppConfig(
        backend=data.get("backend"),
        spreadsheet_id=data.get("spreadsheet_id"),
        calendar_id=data.get("calendar_id"),
        timezone=data.get("timezone"),
        categories=[str(c) for c in categories] if isinstance(categories, list) else [],
        strict_versions=data.get("strict_versions"),
        calendar_timeout_sec=data.get("calendar_timeout_sec"),
        db_path=data.get("db_path"),
    )


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


def build_config(
    overrides: Optional[AppConfig] = None,
    *,
    base: SyncConfig = DEFAULT_CONFIG,
    backend: Optional[str] = None,
) -> SyncConfig:
    """Merge persisted overrides into the defaults; the result is immutable."""

    cfg = overrides or AppConfig()
    calendar = base.calendar
    if cfg.calendar_id:
        calendar = replace(calendar, calendar_id=cfg.calendar_id)
    if cfg.calendar_timeout_sec:
        calendar = replace(calendar, timeout_sec=float(cfg.calendar_timeout_sec))

    tasks = base.tasks
    if cfg.timezone:
        tasks = replace(tasks, default_timezone=cfg.timezone)
    if cfg.categories:
        tasks = replace(tasks, categories=tuple(cfg.categories))
    if cfg.strict_versions is not None:
        tasks = replace(tasks, strict_versions=bool(cfg.strict_versions))

    return replace(
        base,
        backend=backend or cfg.backend or base.backend,
        spreadsheet_id=cfg.spreadsheet_id or base.spreadsheet_id,
        db_path=Path(cfg.db_path) if cfg.db_path else base.db_path,
        calendar=calendar,
        tasks=tasks,
    )


__all__ = ["AppConfig", "build_config", "load_config", "save_config", "update_config"]
