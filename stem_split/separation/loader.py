"""Lazy, serialized access to the separation model.

The model is loaded on the first request and cached for the loader's
lifetime. A single asyncio lock covers the whole load-or-inference
operation, so at most one of them runs at a time. This bounds peak memory and
keeps the numeric backend from being entered concurrently.

``run()`` executes the critical section in a task of its own and shields it:
cancelling or timing out the caller leaves the worker thread running, and the
lock stays held until that thread has finished.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, Set, Union

from ..core.config import SeparationConfig
from ..core.errors import InferenceError, StemSplitError
from .model import ModelHandle, SeparationModel, load_demucs, select_device

logger = logging.getLogger(__name__)

LoadFn = Callable[[SeparationConfig, Optional[Path], str], SeparationModel]


class LoaderState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class LazyModelLoader:
    """
    Owns device selection and one-time model loading.

    Usage:
        loader = LazyModelLoader(config, weights_path)
        stems = await loader.run(split_track, path, out_dir)
    """

    def __init__(
        self,
        config: SeparationConfig,
        weights_path: Optional[Union[str, Path]] = None,
        device: str = "auto",
        load_fn: Optional[LoadFn] = None,
    ):
        """
        Initialize LazyModelLoader.

        Args:
            config: Descriptor of the model to load
            weights_path: Weights file (None = fetch pretrained by name)
            device: Device for inference ('auto', 'cpu', 'cuda', 'mps')
            load_fn: Callable building the model, (config, weights_path, device)
        """
        self.config = config
        self.weights_path = Path(weights_path) if weights_path is not None else None
        self.device = device
        self._load_fn = load_fn or load_demucs
        self._handle: Optional[ModelHandle] = None
        self._state = LoaderState.UNLOADED
        self._lock: Optional[asyncio.Lock] = None
        self._tasks: Set[asyncio.Task] = set()
        self.load_count = 0

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state == LoaderState.LOADED

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def get_or_load(self) -> ModelHandle:
        """
        Return the cached handle, loading the model first if needed.

        Blocking. Callers sharing the loader must hold ``lock``; ``session()``
        does that for them.

        Raises:
            InferenceError: If the model cannot be loaded. The loader stays
                usable and the next call retries.
        """
        if self._handle is not None:
            return self._handle

        self._state = LoaderState.LOADING
        try:
            device = select_device(self.device)
            logger.info("Loading model '%s' on %s", self.config.name, device)
            model = self._load_fn(self.config, self.weights_path, device)
        except Exception as e:
            self._state = LoaderState.UNLOADED
            if isinstance(e, StemSplitError):
                raise
            raise InferenceError(
                f"Failed to load model '{self.config.name}': {e}",
                path=self.weights_path,
                stage="load",
            ) from e

        self._handle = ModelHandle(model=model, device=device, config=self.config)
        self._state = LoaderState.LOADED
        self.load_count += 1
        return self._handle

    def reload(self) -> ModelHandle:
        """Drop the cached model and load it again."""
        self.unload()
        return self.get_or_load()

    def unload(self) -> None:
        """Release the cached model."""
        self._handle = None
        self._state = LoaderState.UNLOADED

    @asynccontextmanager
    async def session(self) -> AsyncIterator[ModelHandle]:
        """
        Hold the model lock and yield a loaded handle.

        The lock is released when the block exits, including when the caller
        is cancelled. Blocking work started inside the block must not outlive
        it; use ``run()`` for work that callers may time out.
        """
        async with self.lock:
            if self._handle is None:
                await asyncio.to_thread(self.get_or_load)
            yield self._handle

    async def _run_locked(self, fn: Callable[..., Any], *args: Any) -> Any:
        async with self.lock:
            if self._handle is None:
                await asyncio.to_thread(self.get_or_load)
            return await asyncio.to_thread(fn, self._handle, *args)

    def _finish_task(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # Mark the result retrieved; a cancelled caller no longer awaits it
        if not task.cancelled():
            task.exception()

    async def run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Call ``fn(handle, *args)`` in a worker thread while holding the lock.

        The model is loaded first if needed. The load and the call run in one
        shielded task, so a cancelled caller gets ``CancelledError`` right
        away while the lock stays held until ``fn`` returns.

        Args:
            fn: Blocking callable taking the ModelHandle first
            *args: Further arguments for ``fn``

        Returns:
            Whatever ``fn`` returns
        """
        task = asyncio.ensure_future(self._run_locked(fn, *args))
        self._tasks.add(task)
        task.add_done_callback(self._finish_task)
        return await asyncio.shield(task)
