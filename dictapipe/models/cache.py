"""Path-keyed cache for expensive local model contexts."""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from ..errors import DictaPipeError, ModelInferenceError, ModelLoadFailed

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class ModelCacheEntry:
    """A loaded model and the file it was loaded from."""
    model: Any
    loaded_path: Path


class ModelCache:
    """Holds at most one loaded model, keyed by its source path.

    A cache hit requires the requested path to equal the cached path exactly.
    Any mismatch replaces the entry with a freshly loaded one; a failed load
    leaves the cache empty. All access happens under one lock, so the model is
    never used by two callers at once.
    """

    def __init__(self, name: str, loader: Callable[[Path], Any]):
        """Initialize an empty cache.

        Args:
            name: Model family name used in log messages ("whisper", "llm")
            loader: Callable that loads a model from a file path
        """
        self.name = name
        self.loader = loader
        self._lock = threading.Lock()
        self._entry: Optional[ModelCacheEntry] = None
        self.load_count = 0

    @property
    def loaded_path(self) -> Optional[Path]:
        with self._lock:
            return self._entry.loaded_path if self._entry else None

    def is_loaded(self) -> bool:
        return self.loaded_path is not None

    def _ensure_loaded(self, path: Path, force: bool = False) -> ModelCacheEntry:
        """Load ``path`` unless it is already cached. Caller holds the lock."""
        if not force and self._entry is not None and self._entry.loaded_path == path:
            return self._entry

        self._entry = None
        load_start = time.time()
        logger.info(f"Loading {self.name} model from {path} ...")
        try:
            model = self.loader(path)
        except DictaPipeError:
            raise
        except Exception as e:
            raise ModelLoadFailed(f"Failed to load {self.name} model: {e}") from e

        self.load_count += 1
        self._entry = ModelCacheEntry(model=model, loaded_path=path)
        logger.info(f"{self.name} model loaded (took {time.time() - load_start:.2f}s)")
        return self._entry

    @contextmanager
    def use(self, path: PathLike) -> Iterator[Any]:
        """Yield the model loaded from ``path`` while holding the cache lock.

        An unexpected exception raised by the caller while holding the model
        drops the entry, since the native context may be left inconsistent.
        """
        path = Path(path)
        with self._lock:
            entry = self._ensure_loaded(path)
            try:
                yield entry.model
            except DictaPipeError:
                raise
            except Exception as e:
                logger.error(f"{self.name} model failed during use, dropping cached context: {e}")
                self._entry = None
                raise ModelInferenceError(f"{self.name} inference failed: {e}") from e

    def warm(self, path: PathLike) -> None:
        """Pre-load ``path`` so the next call does not pay the load cost."""
        with self._lock:
            self._ensure_loaded(Path(path), force=True)

    def invalidate(self) -> None:
        """Drop the cached model; the next use reloads it."""
        with self._lock:
            if self._entry is not None:
                logger.info(f"{self.name} model cache invalidated")
            self._entry = None
