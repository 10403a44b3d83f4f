"""
Versioned prompt templates: contentflow/prompts/{version}/{component}.yaml with optional
"system" and "user" keys. Placeholders are written <<NAME>> and filled by render_prompt.
"""
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml

_PROMPTS_DIR = Path(__file__).resolve().parent
_ROLES = ("system", "user")


def _resolve_version(version: Optional[str]) -> str:
    if version is not None:
        return version
    from contentflow.core.config import settings
    return settings.prompt_version


@lru_cache(maxsize=64)
def _read(component: str, version: str) -> Dict[str, str]:
    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"No {component} prompt for version {version} ({path})")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return {role: str(data[role]).strip() for role in _ROLES if data.get(role) is not None}


def load_prompts(component: str, version: Optional[str] = None) -> Dict[str, str]:
    """Templates for a component keyed by role. Files are read once per (component, version).
    Why available: Keeps query refinement, answer and transcription wording out of code so it can be revised per PROMPT_VERSION."""
    return dict(_read(component, _resolve_version(version)))


def get_prompt(component: str, role: str, version: Optional[str] = None) -> str:
    prompts = load_prompts(component, version=version)
    if role not in prompts:
        raise ValueError(f"{component} has no '{role}' prompt in version {_resolve_version(version)}")
    return prompts[role]


def get_system_prompt(component: str, version: Optional[str] = None) -> str:
    return get_prompt(component, "system", version=version)


def render_prompt(component: str, role: str = "user", version: Optional[str] = None, **values: str) -> str:
    """Template with every <<KEY>> replaced by values[key.lower()]; unknown placeholders are left as written."""
    text = get_prompt(component, role, version=version)
    for key, value in values.items():
        text = text.replace(f"<<{key.upper()}>>", value)
    return text
