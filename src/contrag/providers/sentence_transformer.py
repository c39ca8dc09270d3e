"""Embedding provider backed by a local Sentence Transformers model."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, List, Optional, Sequence

from contrag.errors import ProviderError
from contrag.telemetry import emit_embeddings_event

from .base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Lazy-loading wrapper around ``SentenceTransformer``.

    The model is loaded on first use. Import or load failures surface as
    :class:`~contrag.errors.ProviderError`; there is no silent fallback model.
    """

    name = "sentence-transformers"

    def __init__(
        self,
        model_name_or_path: str = DEFAULT_MODEL_NAME,
        *,
        device: str | None = None,
        expected_dimensions: int | None = None,
        normalize_embeddings: bool = False,
    ) -> None:
        self._model_name = model_name_or_path
        self._device = device
        self._expected_dimensions = expected_dimensions
        self._normalize = normalize_embeddings
        self._model: Optional[Any] = None
        self._dimension: Optional[int] = None
        self._lock = threading.RLock()

    @property
    def model_name(self) -> str:
        return self._model_name

    def _ensure_loaded(self) -> Any:
        if self._model is not None:
            return self._model
        with self._lock:
            if self._model is not None:
                return self._model
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as error:
                raise ProviderError(
                    "The sentence-transformers provider requires the 'sentence-transformers' package",
                    cause=error,
                ) from error

            try:
                model = SentenceTransformer(self._model_name, device=self._device)
            except Exception as error:
                raise ProviderError(
                    f"Failed to load sentence-transformers model {self._model_name!r}",
                    cause=error,
                ) from error

            dimension = int(model.get_sentence_embedding_dimension())
            if self._expected_dimensions is not None and dimension != self._expected_dimensions:
                raise ProviderError(
                    f"Model {self._model_name!r} produces {dimension}-dimensional embeddings, "
                    f"configuration expects {self._expected_dimensions}"
                )
            LOGGER.info("Loaded embedding model %s (%s dimensions)", self._model_name, dimension)
            self._dimension = dimension
            self._model = model
            return model

    def dimensions(self) -> int:
        if self._dimension is None:
            self._ensure_loaded()
        return int(self._dimension or 0)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        model = self._ensure_loaded()
        started = time.perf_counter()
        try:
            embeddings = model.encode(
                list(texts),
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=self._normalize,
            )
        except Exception as error:
            emit_embeddings_event(
                provider=self._model_name,
                count=len(texts),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                errors=[str(error)],
            )
            raise ProviderError("sentence-transformers encoding failed", cause=error) from error

        emit_embeddings_event(
            provider=self._model_name,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return embeddings.tolist()
