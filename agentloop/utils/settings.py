from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    provider: Literal["echo", "openai"] = "echo"
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    api_key_env: str = "OPENAI_API_KEY"
    base_url: Optional[str] = None

    def api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env)


class StorageConfig(BaseModel):
    driver: Literal["memory", "file"] = "memory"
    root: str = "data/threads"


class WorkflowConfig(BaseModel):
    max_total_iterations: Optional[int] = Field(default=50, ge=1)
    worker_max_iterations: int = Field(default=3, ge=1)
    validator_max_iterations: int = Field(default=3, ge=1)


class PromptConfig(BaseModel):
    directory: str = "prompts"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: Literal["console", "json"] = "console"


class AppConfig(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    prompts: PromptConfig = Field(default_factory=PromptConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(env: str = "base", config_dir: Path | str = "configs") -> AppConfig:
    config_dir = Path(config_dir)
    base = _read_yaml(config_dir / "base.yaml")
    if env != "base":
        override_path = config_dir / f"{env}.yaml"
        if override_path.exists():
            base = _merge_dicts(base, _read_yaml(override_path))
    return AppConfig.model_validate(base)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge_dicts(base[key], value)
        else:
            merged[key] = value
    return merged
