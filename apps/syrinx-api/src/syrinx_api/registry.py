"""Voice model registry, built once from a model directory and read-only afterwards."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from syrinx_common.logging import get_logger

from .engine import SynthesisEngine
from .errors import NotFoundError, RegistryError

log = get_logger(__name__)

EngineFactory = Callable[[Path], SynthesisEngine]


@dataclass(frozen=True)
class VoiceModel:
    name: str
    path: Path
    engine: SynthesisEngine


def default_engine_factory(path: Path) -> SynthesisEngine:
    from .engines.openjtalk import OpenJTalkEngine

    return OpenJTalkEngine(path)


class ModelRegistry:
    """Name → VoiceModel mapping.

    Build it with :meth:`initialize`; there is no mutation API, so concurrent
    requests can share one instance without locking.
    """

    def __init__(self, voices: Mapping[str, VoiceModel]) -> None:
        self._voices = MappingProxyType(dict(voices))

    @classmethod
    def initialize(
        cls,
        directory: str | os.PathLike,
        engine_factory: EngineFactory = default_engine_factory,
    ) -> ModelRegistry:
        """Scan ``directory`` once and load one engine per model file.

        Raises RegistryError if the directory cannot be read or the engine
        library is missing. A file whose engine fails to load is logged and
        skipped.
        """
        root = Path(directory)
        try:
            with os.scandir(root) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            raise RegistryError(f"Failed to read models directory '{root}': {exc.strerror or exc}") from exc

        voices: dict[str, VoiceModel] = {}
        for entry in entries:
            if entry.name.startswith(".") or not entry.is_file():
                continue
            path = Path(entry.path)
            name = path.stem
            if name in voices:
                log.warning("duplicate_voice_skipped", voice=name, file=entry.name, kept=voices[name].path.name)
                continue
            try:
                engine = engine_factory(path)
                engine.load()
            except ImportError as exc:
                raise RegistryError(f"Voice engine is not installed: {exc}") from exc
            except Exception as exc:
                log.error("voice_load_failed", voice=name, file=entry.name, error=str(exc))
                continue
            voices[name] = VoiceModel(name=name, path=path, engine=engine)

        log.info("model_registry_ready", directory=str(root), voices=list(voices))
        return cls(voices)

    def lookup(self, name: str) -> VoiceModel:
        try:
            return self._voices[name]
        except KeyError:
            raise NotFoundError(f"Voice '{name}' is not available.") from None

    def list_names(self) -> list[str]:
        return list(self._voices)

    def __contains__(self, name: object) -> bool:
        return name in self._voices

    def __len__(self) -> int:
        return len(self._voices)
