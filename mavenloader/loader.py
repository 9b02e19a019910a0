"""
Injection of downloaded artifacts into the running interpreter.

An artifact becomes importable once its path is on ``sys.path``; archives
(jar, zip, wheel) are served by the ``zipimport`` path hook. Injection is
best-effort: when the interpreter does not allow it, loading degrades to
"downloaded but not activated" and is logged instead of raised.
"""
import importlib
import logging
import sys
import threading
import zipfile
import zipimport
from pathlib import Path
from typing import Protocol

from .errors import ArtifactNotFoundError, InjectionUnsupportedError

logger = logging.getLogger(__name__)


class CodeSourceExtender(Protocol):
    def probe(self) -> bool:
        """Whether code sources can be added at all. Must not raise."""
        ...

    def add(self, path: Path) -> None:
        """Makes path importable. Raises InjectionUnsupportedError or OSError."""
        ...


class SysPathExtender:
    """Appends artifacts to an import search path list (sys.path by default)."""

    def __init__(self, search_path: list | None = None, path_hooks: list | None = None):
        self.search_path = sys.path if search_path is None else search_path
        self.path_hooks = sys.path_hooks if path_hooks is None else path_hooks

    def probe(self) -> bool:
        marker = object()
        try:
            self.search_path.append(marker)
            self.search_path.remove(marker)
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug(f"Import search path is not extensible: {e}")
            return False
        return True

    def add(self, path: Path) -> None:
        if zipfile.is_zipfile(path) and zipimport.zipimporter not in self.path_hooks:
            raise InjectionUnsupportedError("zipimport is not installed as a path hook, archives cannot be imported")
        self.search_path.append(str(path))
        importlib.invalidate_caches()


_capability: bool | None = None
_capability_lock = threading.Lock()


def injection_enabled(extender: CodeSourceExtender | None = None) -> bool:
    """Whether the default extender works here. Detected once per process."""
    global _capability
    if _capability is None:
        with _capability_lock:
            if _capability is None:
                _capability = (extender or SysPathExtender()).probe()
                if not _capability:
                    logger.error("The import search path cannot be extended, libraries will be downloaded but not loaded.")
    return _capability


class DynamicLoader:
    """Loads resolved artifacts into the running process. Additive only."""

    def __init__(self, extender: CodeSourceExtender | None = None, enabled: bool | None = None):
        if extender is None:
            extender = SysPathExtender()
            if enabled is None:
                enabled = injection_enabled(extender)
        elif enabled is None:
            enabled = extender.probe()
        self.extender = extender
        self.enabled = enabled

    def load(self, path) -> bool:
        """
        Adds one artifact to the interpreter's code sources.
        Returns True if it was injected; False when injection is unavailable.
        Raises ArtifactNotFoundError if the file is missing.
        """
        path = Path(path)
        if not path.exists():
            raise ArtifactNotFoundError(f"Artifact file not found: {path}")
        if not self.enabled:
            logger.debug(f"Injection disabled, not loading {path}")
            return False
        try:
            self.extender.add(path.resolve())
        except InjectionUnsupportedError as e:
            logger.error(f"Cannot load {path}: {e}")
            return False
        logger.info(f"Loaded library into the interpreter: {path.resolve()}")
        return True
