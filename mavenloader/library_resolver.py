"""
Runtime dependency injection.

Usage:

    from mavenloader.library_resolver import LibraryResolver

    resolver = LibraryResolver()
    resolver.add_repository("https://repo.example.com/maven2", "example")
    resolver.add_dependency("com.example:toolkit:1.2.0")

Maven Central and Sonatype OSS are registered by default. Any repository
pointing at Maven Central is served by the fastest mirror instead.
"""
import logging
from pathlib import Path

from .models import Coordinate, Dependency, RemoteRepository
from .config import DEFAULT_LOCAL_REPOSITORY, SONATYPE_URL
from .loader import DynamicLoader
from .resolver import MavenResolver, ResolutionService
from .rewriter import central_repository, rewrite

logger = logging.getLogger(__name__)


def sonatype_repository() -> RemoteRepository:
    return RemoteRepository("sonatype", SONATYPE_URL, "default")


class LibraryResolver:
    """Resolves Maven dependencies and loads them into the running interpreter."""

    def __init__(self, resolution_service: ResolutionService | None = None,
                 loader: DynamicLoader | None = None, selector=None,
                 local_repository=DEFAULT_LOCAL_REPOSITORY, default_repositories: bool = True):
        self.resolution_service = resolution_service or MavenResolver(local_repository)
        self.loader = loader or DynamicLoader()
        self.selector = selector
        self._repositories: list[RemoteRepository] = []
        if default_repositories:
            self._repositories.append(central_repository(selector))
            self._repositories.append(sonatype_repository())

    @property
    def repositories(self) -> tuple[RemoteRepository, ...]:
        return tuple(self._repositories)

    def add_repository(self, repository, name: str | None = None, type: str = "default"):
        """
        Registers a remote repository, either a RemoteRepository or a URL plus
        a name. Maven Central references are redirected to the selected mirror.
        """
        if not isinstance(repository, RemoteRepository):
            if not name:
                raise ValueError("A repository name is required when adding a repository by URL")
            repository = RemoteRepository(name, repository, type)
        self._repositories.append(rewrite(repository, self.selector))

    def add_dependency(self, dependency, scope: str | None = None) -> list[Path]:
        """
        Resolves a dependency with everything it needs and loads the artifacts.
        Accepts a coordinate string, a Coordinate or a Dependency. Resolution
        errors propagate as raised. Returns the paths that were handed to the loader.
        """
        if isinstance(dependency, str):
            dependency = Coordinate.parse(dependency)
        if isinstance(dependency, Coordinate):
            dependency = Dependency(dependency, scope)

        results = self.resolution_service.resolve(dependency, list(self._repositories))
        if not results:
            return []

        loaded = []
        for result in results:
            path = result.path
            if path is not None and Path(path).exists():
                self.loader.load(path)
                loaded.append(Path(path))
        logger.info(f"Added {dependency} ({len(loaded)} artifact(s))")
        return loaded
