"""Local LLM inference through llama.cpp bindings."""

import logging
import struct
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from ..errors import InvalidModelFile, ModelNotDownloaded, TokenizationError
from ..models.cache import ModelCache
from ..models.settings import PolishModel

logger = logging.getLogger(__name__)

MAX_NEW_TOKENS = 512
GENERATION_TIMEOUT_SECONDS = 15.0
CONTEXT_SIZE = 2048
BATCH_SIZE = 512

GGUF_MAGIC = b"GGUF"
GGUF_VERSIONS = (2, 3)


def validate_gguf_file(path: Path, expected_model: PolishModel) -> None:
    """Reject corrupted or truncated GGUF files before they reach the native loader.

    Raises:
        InvalidModelFile: on a bad magic, an unsupported version, or a file
            smaller than 90% of the expected size
    """
    try:
        with open(path, "rb") as f:
            header = f.read(8)
    except OSError as e:
        raise InvalidModelFile(f"Cannot open model file: {e}") from e

    if len(header) < 8:
        raise InvalidModelFile("Cannot read GGUF header")
    if header[:4] != GGUF_MAGIC:
        raise InvalidModelFile(f"Invalid GGUF magic: expected 'GGUF', got {header[:4]!r}")
    version = struct.unpack("<I", header[4:8])[0]
    if version not in GGUF_VERSIONS:
        raise InvalidModelFile(f"Unsupported GGUF version: {version}")

    file_size = Path(path).stat().st_size
    expected_size = expected_model.size_bytes
    min_size = expected_size * 9 // 10
    if file_size < min_size:
        raise InvalidModelFile(
            f"Model file too small: {file_size} bytes (expected ~{expected_size} bytes, "
            f"min {min_size}). File may be corrupted or incomplete.")


def load_llama_model(path: Path) -> Any:
    """Load a GGUF model with full GPU offload."""
    from llama_cpp import Llama

    return Llama(
        model_path=str(path),
        n_ctx=CONTEXT_SIZE,
        n_batch=BATCH_SIZE,
        n_gpu_layers=-1,
        flash_attn=False,
        verbose=False,
    )


def format_chat(template: str, system_prompt: str, user_text: str) -> Any:
    """Render a (system, user) conversation with a llama.cpp chat format.

    Returns the formatter response, which carries ``prompt`` and ``stop``.
    """
    from llama_cpp import llama_chat_format

    formatters = {
        "llama-3": llama_chat_format.format_llama3,
        "chatml": llama_chat_format.format_chatml,
    }
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_text},
    ]
    return formatters[template](messages=messages)


def _stop_strings(formatted: Any) -> List[str]:
    stop = getattr(formatted, "stop", None)
    if not stop:
        return []
    return [stop] if isinstance(stop, str) else list(stop)


def generate_greedy(llm: Any,
                    prompt: str,
                    stop: List[str],
                    max_tokens: int = MAX_NEW_TOKENS,
                    timeout: float = GENERATION_TIMEOUT_SECONDS,
                    clock: Callable[[], float] = time.monotonic) -> str:
    """Greedy decode from ``prompt``.

    Stops on end of generation, a stop string, ``max_tokens`` tokens, or
    ``timeout`` seconds; a timeout truncates the output instead of failing.
    """
    tokens = llm.tokenize(prompt.encode("utf-8"), add_bos=False, special=True)
    if not tokens:
        raise TokenizationError("Empty tokenization result")
    logger.debug(f"LLM tokenized: {len(tokens)} tokens")

    eos = llm.token_eos()
    pieces: List[bytes] = []
    generated: List[int] = []
    gen_start = clock()
    for token in llm.generate(tokens, temp=0.0, reset=True):
        if clock() - gen_start > timeout:
            logger.warning(f"Polish inference timeout ({timeout:.0f}s), truncating output")
            break
        if token == eos:
            break
        pieces.append(llm.detokenize([token], prev_tokens=tokens + generated))
        generated.append(token)
        text = b"".join(pieces).decode("utf-8", errors="ignore")
        if any(s in text for s in stop):
            break
        if len(generated) >= max_tokens:
            break

    elapsed = max(clock() - gen_start, 1e-9)
    logger.debug(f"LLM generation: {len(generated)} tokens in {elapsed:.2f}s "
                 f"({len(generated) / elapsed:.1f} t/s)")

    text = b"".join(pieces).decode("utf-8", errors="replace")
    for s in stop:
        if s in text:
            text = text[:text.index(s)]
    return text.strip()


class LlamaEngine:
    """Runs polishing prompts through a cached local GGUF model."""

    def __init__(self,
                 models_dir: Path,
                 loader: Optional[Callable[[Path], Any]] = None,
                 max_tokens: int = MAX_NEW_TOKENS,
                 timeout: float = GENERATION_TIMEOUT_SECONDS):
        self.models_dir = Path(models_dir)
        self.cache = ModelCache("llm", loader or load_llama_model)
        self.max_tokens = max_tokens
        self.timeout = timeout

    def model_path(self, model: PolishModel) -> Path:
        return self.models_dir / model.filename

    def is_downloaded(self, model: PolishModel) -> bool:
        return self.model_path(model).exists()

    def complete(self, model: PolishModel, system_prompt: str, user_text: str) -> str:
        """Generate a reply to ``user_text`` under ``system_prompt``.

        Raises:
            ModelNotDownloaded: if the model file is missing
            InvalidModelFile: if the file fails header validation
            ModelLoadFailed, TokenizationError, ModelInferenceError: on inference failures
        """
        path = self.model_path(model)
        if not path.exists():
            raise ModelNotDownloaded(f"Model file not found: {path}")
        validate_gguf_file(path, model)

        formatted = format_chat(model.chat_template, system_prompt, user_text)
        with self.cache.use(path) as llm:
            return generate_greedy(
                llm,
                formatted.prompt,
                _stop_strings(formatted),
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )

    def warm(self, model: PolishModel) -> None:
        """Validate and pre-load ``model`` so the first polish does not pay the load cost."""
        path = self.model_path(model)
        if not path.exists():
            raise ModelNotDownloaded(f"Model file not found: {path}")
        validate_gguf_file(path, model)
        self.cache.warm(path)

    def invalidate_cache(self) -> None:
        self.cache.invalidate()
