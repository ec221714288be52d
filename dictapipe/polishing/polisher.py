"""Text polishing service: rewrites raw transcripts with a local or cloud LLM."""

import logging
import re
import time
from pathlib import Path
from typing import Optional, Tuple

from ..errors import ContentError, ModelInferenceError
from ..models.context import InvocationContext
from ..models.settings import PolishConfig, PolishMode, PolishModel
from ..models.transcription import PolishResult
from .cloud_engine import CloudChatEngine
from .llama_engine import LlamaEngine
from .prompts import build_edit_system_prompt, build_edit_user_message, build_prompt, wrap_user_text

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
_ECHOED_TAGS = re.compile(r"</?(speech|selected_text|instruction)>")


def extract_think_tags(text: str) -> Tuple[str, Optional[str]]:
    """Split a ``<think>...</think>`` block off the reply.

    Returns:
        ``(text_after_block, reasoning)``; reasoning is None when absent or blank
    """
    start = text.find(THINK_OPEN)
    end = text.find(THINK_CLOSE)
    if start == -1 or end == -1:
        return text, None
    reasoning = text[start + len(THINK_OPEN):end].strip()
    return text[end + len(THINK_CLOSE):], reasoning or None


def strip_echoed_tags(text: str) -> str:
    return _ECHOED_TAGS.sub("", text)


def exceeds_safety_limit(raw_text: str, polished: str) -> bool:
    """True when the output is suspiciously long for its input, a sign of hallucination."""
    return len(polished) > len(raw_text) * 3 + 200


class TextPolisher:
    """Cleans up transcripts with context-aware prompts.

    Polishing never fails a dictation: any error, an empty reply, or an
    implausibly long reply falls back to the raw text.
    """

    def __init__(self,
                 models_dir: Path,
                 llama: Optional[LlamaEngine] = None,
                 cloud: Optional[CloudChatEngine] = None):
        self.models_dir = Path(models_dir)
        self.llama = llama or LlamaEngine(self.models_dir)
        self.cloud = cloud or CloudChatEngine()

    def _complete(self, config: PolishConfig, system_prompt: str, user_text: str) -> str:
        if config.mode == PolishMode.CLOUD:
            return self.cloud.complete(config.cloud, system_prompt, user_text)
        return self.llama.complete(config.model, system_prompt, user_text)

    def model_label(self, config: PolishConfig) -> str:
        if config.mode == PolishMode.CLOUD:
            return f"{config.cloud.model_id} (Cloud/{config.cloud.provider.key})"
        return f"{config.model.display_name} (Local)"

    def polish(self, raw_text: str, config: PolishConfig, context: InvocationContext) -> PolishResult:
        """Polish ``raw_text`` for the application described by ``context``."""
        if not raw_text.strip():
            return PolishResult(text=raw_text)

        start_time = time.time()
        try:
            system_prompt = build_prompt(config, context)
            raw_output = self._complete(config, system_prompt, wrap_user_text(raw_text, config.reasoning))
        except Exception as e:
            logger.error(f"Polish error: {e}; using original text")
            return PolishResult(text=raw_text)

        polished, reasoning = extract_think_tags(raw_output)
        polished = strip_echoed_tags(polished).strip()

        if not polished:
            logger.warning("Polish returned empty, using original")
            return PolishResult(text=raw_text, reasoning=reasoning)
        if exceeds_safety_limit(raw_text, polished):
            logger.warning(f"Polish output too long ({len(polished)} vs {len(raw_text)} chars), "
                           f"likely hallucination; using original")
            return PolishResult(text=raw_text, reasoning=reasoning)

        logger.info(f"Polished {len(raw_text)} -> {len(polished)} chars "
                    f"with {self.model_label(config)} ({time.time() - start_time:.2f}s)")
        return PolishResult(text=polished, reasoning=reasoning)

    def polish_with_prompt(self, config: PolishConfig, system_prompt: str, raw_text: str) -> str:
        """Run ``raw_text`` through an explicit system prompt, for comparing prompts.

        Errors propagate to the caller.
        """
        raw_output = self._complete(config, system_prompt, raw_text)
        cleaned, _ = extract_think_tags(raw_output)
        return cleaned.strip()

    def edit_text_by_instruction(self, config: PolishConfig, selected_text: str, instruction: str) -> str:
        """Apply a spoken instruction ("translate to English", ...) to selected text.

        Raises:
            ContentError: if the selected text or the instruction is blank
            ModelInferenceError: if the model returned nothing
        """
        if not selected_text.strip():
            raise ContentError("Selected text is empty")
        if not instruction.strip():
            raise ContentError("Instruction is empty")

        user_text = build_edit_user_message(selected_text, instruction, config.reasoning)
        raw_output = self._complete(config, build_edit_system_prompt(), user_text)
        cleaned, _ = extract_think_tags(raw_output)
        cleaned = strip_echoed_tags(cleaned).strip()
        if not cleaned:
            raise ModelInferenceError("LLM returned empty result")
        return cleaned

    def is_polish_ready(self, config: PolishConfig) -> bool:
        """Cloud mode needs an API key; local mode needs the model file on disk."""
        if config.mode == PolishMode.CLOUD:
            return bool(config.cloud.api_key)
        return self.llama.is_downloaded(config.model)

    def invalidate_cache(self) -> None:
        self.llama.invalidate_cache()

    def warm(self, model: PolishModel) -> None:
        """Pre-load a local polish model."""
        self.llama.warm(model)
