"""Local language-model access through an explicit, caller-owned cache."""

from __future__ import annotations
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from .errors import ModelError
from .settings import ModelConfig, Settings

SYSTEM_PROMPT = "You are Chatty-EDU, an offline school AI helper. Answer plainly, safely, and briefly."
CONTEXT_TOKENS = 2048

Loader = Callable[[Path], Any]

_log = structlog.get_logger(__name__)


def load_llama_model(path: Path) -> Any:
    if not path.exists():
        raise ModelError(f"Model file not found: {path}")
    try:
        from llama_cpp import Llama  # type: ignore[import-untyped]
    except ImportError as e:
        raise ModelError(
            "llama-cpp-python is required for local chat. "
            "Install it with: pip install 'chatty-edu[model]'"
        ) from e
    try:
        # CPU only for school devices
        return Llama(
            model_path=str(path),
            n_gpu_layers=0,
            use_mmap=True,
            use_mlock=False,
            n_ctx=CONTEXT_TOKENS,
            verbose=False,
        )
    except (ValueError, RuntimeError) as e:
        raise ModelError(f"Failed to load model {path}: {e}") from e


class ModelCache:
    """Holds at most one loaded model, keyed by its file path."""

    def __init__(self, loader: Loader = load_llama_model) -> None:
        self._loader = loader
        self._path: Optional[Path] = None
        self._model: Any = None

    @property
    def cached_path(self) -> Optional[Path]:
        return self._path

    def get(self, path: Path) -> Any:
        path = Path(path)
        if self._path == path and self._model is not None:
            return self._model
        return self.reload(path)

    def reload(self, path: Path) -> Any:
        path = Path(path)
        model = self._loader(path)
        self._path, self._model = path, model
        _log.info("model_loaded", path=str(path))
        return model

    def invalidate(self) -> None:
        self._path, self._model = None, None


def build_prompt(user_input: str) -> str:
    return f"{SYSTEM_PROMPT}\n\nUser: {user_input}\nAssistant:"


def chat_completion(cache: ModelCache, config: ModelConfig, user_input: str) -> str:
    model = cache.get(Path(config.path))
    try:
        result = model(build_prompt(user_input), max_tokens=max(config.max_tokens, 16), stop=["\nUser:"])
    except (ValueError, RuntimeError) as e:
        raise ModelError(f"Model could not complete: {e}") from e
    text = result["choices"][0]["text"].strip()
    if not text:
        raise ModelError("Model returned an empty response")
    return text


def generate_answer(settings: Settings, cache: ModelCache, user_input: str) -> str:
    try:
        return chat_completion(cache, settings.model, user_input)
    except ModelError as e:
        return f"I couldn't run the local model yet ({e})."
