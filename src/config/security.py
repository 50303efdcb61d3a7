"""
Security-critical configuration injection.

SECURITY POLICY:
- The Gemini API key MUST NEVER be in YAML files
- It comes from GOOGLE_API_KEY (or GEMINI_API_KEY) only and overwrites
  whatever the YAML contains, so a key committed by accident is ignored
"""

import os
from typing import Any, Dict, Optional

API_KEY_ENV_VARS = ("GOOGLE_API_KEY", "GEMINI_API_KEY")


def _is_nonempty_string(val: Any) -> bool:
    """True if val is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def expand_string_tokens(value: str) -> str:
    """Expand ${VAR} / $VAR tokens; undefined variables are left unchanged."""
    return os.path.expandvars(value or "")


def resolve_api_key() -> Optional[str]:
    """Return the first non-empty API key from the environment, if any."""
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if _is_nonempty_string(value):
            return value.strip()
    return None


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def inject_api_keys(config_data: Dict[str, Any]) -> None:
    """
    Inject the Gemini API key into the ``live`` and ``content`` sections.

    Both endpoints share one key. Any YAML value is overwritten (with None when
    the environment has no key) so that keys never come from files.
    """
    api_key = resolve_api_key()
    _section(config_data, 'live')['api_key'] = api_key
    _section(config_data, 'content')['api_key'] = api_key


def expand_prompt_tokens(config_data: Dict[str, Any]) -> None:
    """Expand environment tokens in free-text settings the learner may template."""
    enrichment = _section(config_data, 'enrichment')
    for key in ('failure_marker', 'learner_language'):
        if _is_nonempty_string(enrichment.get(key)):
            enrichment[key] = expand_string_tokens(enrichment[key])
