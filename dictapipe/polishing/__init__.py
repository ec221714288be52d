"""Text polishing module for DictaPipe."""

from .cloud_engine import CloudChatEngine
from .llama_engine import LlamaEngine, validate_gguf_file
from .polisher import TextPolisher, extract_think_tags
from .prompts import build_prompt, default_prompt_rules, find_matching_rule, resolve_prompt
from ..endpoints import validate_custom_endpoint

__all__ = [
    "CloudChatEngine",
    "LlamaEngine",
    "validate_gguf_file",
    "TextPolisher",
    "extract_think_tags",
    "build_prompt",
    "default_prompt_rules",
    "find_matching_rule",
    "resolve_prompt",
    "validate_custom_endpoint",
]
