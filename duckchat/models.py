"""
Model catalogue for the chat backend.

Maps the short aliases used on the command line to the model ids the
backend expects in the ``model`` field of a chat payload.
"""

from typing import Dict, Optional

DEFAULT_ALIAS = "gpt-4o-mini"

MODEL_ALIASES: Dict[str, str] = {
    "gpt-4o-mini": "gpt-4o-mini",
    "claude-3-haiku": "claude-3-haiku-20240307",
    "llama": "meta-llama/Llama-3.3-70B-Instruct-Turbo",
    "mixtral": "mistralai/Mistral-Small-24B-Instruct-2501",
    "o4mini": "o4-mini",
}

# Extra spellings accepted by the /model command.
_ALIAS_SYNONYMS: Dict[str, str] = {
    "1": "gpt-4o-mini",
    "gpt4mini": "gpt-4o-mini",
    "2": "claude-3-haiku",
    "claude3": "claude-3-haiku",
    "3": "llama",
    "4": "mixtral",
    "5": "o4mini",
}


def normalize_alias(choice: str) -> Optional[str]:
    """Return the canonical alias for ``choice`` or None if unknown."""
    key = (choice or "").strip().lower()
    if key in MODEL_ALIASES:
        return key
    return _ALIAS_SYNONYMS.get(key)


def resolve_model(alias: str) -> str:
    """Backend model id for an alias; unknown aliases get the default model."""
    canonical = normalize_alias(alias)
    if canonical is None:
        return MODEL_ALIASES[DEFAULT_ALIAS]
    return MODEL_ALIASES[canonical]


def short_name(model: str) -> str:
    """Display name for a backend model id."""
    for alias, model_id in MODEL_ALIASES.items():
        if model_id == model:
            return alias
    return "unknown"
