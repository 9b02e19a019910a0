"""
Maven-layout dependency resolution.

MavenResolver turns one requested Dependency plus an ordered list of remote
repositories into the list of locally cached artifact files for the
dependency and everything it pulls in transitively:

1. Collect: walk the POM graph breadth-first. Parent POMs and import-scoped
   BOMs feed properties and dependency management; the nearest declaration
   of each (groupId, artifactId, extension, classifier) wins.
2. Download: fetch the selected artifacts concurrently into the local
   repository, verifying checksums according to the checksum policy.

Every failure is raised as ResolutionError naming the path from the
requested coordinate to the node that failed.
"""
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence

import requests
from tqdm import tqdm

from .models import ArtifactResult, Coordinate, Dependency, PomInfo, RemoteRepository, RepoFile
from .errors import ResolutionError
from .downloader import download_file, CHECKSUM_POLICIES
from .pom_parser import parse_pom, project_properties, interpolate, has_placeholder, is_version_range
from .config import DEFAULT_LOCAL_REPOSITORY, DEFAULT_CHECKSUM_POLICY, MAX_WORKERS, USER_AGENT

logger = logging.getLogger(__name__)

TRANSITIVE_SCOPES = ("compile", "runtime")
MAX_PARENT_DEPTH = 32

# Dependency <type> values that do not map 1:1 onto a file extension
TYPE_EXTENSIONS = {
    "test-jar": ("jar", "tests"),
    "bundle": ("jar", ""),
    "maven-plugin": ("jar", ""),
    "ejb": ("jar", ""),
    "ejb-client": ("jar", "client"),
    "java-source": ("jar", "sources"),
    "javadoc": ("jar", "javadoc"),
}


class ResolutionService(Protocol):
    def resolve(self, dependency: Dependency,
                repositories: Sequence[RemoteRepository]) -> list[ArtifactResult]:
        ...


@dataclass
class ProjectModel:
    """A POM after inheritance, BOM imports and interpolation."""
    coordinate: Coordinate
    properties: dict[str, str] = field(default_factory=dict)
    managed: dict[tuple, dict] = field(default_factory=dict)
    dependencies: list[dict] = field(default_factory=list)
    # Uninterpolated declarations along the parent chain, root ancestor first
    raw_managed: list[dict] = field(default_factory=list)
    raw_dependencies: list[dict] = field(default_factory=list)


def repository_url(repository: RemoteRepository, path: str) -> str:
    return f"{repository.url.rstrip('/')}/{path}"


def _management_key(raw: dict) -> tuple:
    return (raw["groupId"], raw["artifactId"], raw.get("type") or "jar", raw.get("classifier") or "")


def _interpolated(raw: dict, properties: dict[str, str]) -> dict:
    resolved = dict(raw)
    for name in ("groupId", "artifactId", "version", "type", "classifier", "scope", "optional"):
        resolved[name] = interpolate(raw.get(name) or "", properties)
    resolved["exclusions"] = [(interpolate(g, properties), interpolate(a, properties))
                              for g, a in raw.get("exclusions", ())]
    return resolved


class MavenResolver:
    """Resolves coordinates against Maven 2 layout repositories into a local repository cache."""

    def __init__(self, local_repository=DEFAULT_LOCAL_REPOSITORY, session: requests.Session | None = None,
                 checksum_policy: str = DEFAULT_CHECKSUM_POLICY, workers: int = MAX_WORKERS,
                 show_progress: bool = True):
        if checksum_policy not in CHECKSUM_POLICIES:
            raise ValueError(f"Unknown checksum policy {checksum_policy!r}, expected one of {CHECKSUM_POLICIES}")
        self.local_repository = Path(local_repository)
        if session is None:
            session = requests.Session()
            session.headers.update({'User-Agent': USER_AGENT})
        self.session = session
        self.checksum_policy = checksum_policy
        self.workers = max(1, workers)
        self.show_progress = show_progress
        self._models: dict[Coordinate, ProjectModel] = {}
        self._models_lock = threading.Lock()

    def resolve(self, dependency: Dependency,
                repositories: Sequence[RemoteRepository]) -> list[ArtifactResult]:
        repositories = [r for r in repositories if self._supported(r)]
        nodes = self.collect(dependency, repositories)
        logger.info(f"Resolved {len(nodes)} artifact(s) for {dependency}")
        return self.download_all(nodes, repositories)

    @staticmethod
    def _supported(repository: RemoteRepository) -> bool:
        if repository.type != "default":
            logger.warning(f"Skipping repository {repository.name}: layout {repository.type!r} is not supported")
            return False
        return True

    # --- Collection ---

    def collect(self, dependency: Dependency,
                repositories: Sequence[RemoteRepository]) -> list[tuple[Coordinate, tuple]]:
        """
        Breadth-first walk of the dependency graph.
        Returns (coordinate, trail) pairs in graph order, the requested one first.
        """
        root = dependency.coordinate
        self._check_version(root.version, root, (root,))

        selected: dict[tuple, Coordinate] = {}
        ordered: list[tuple[Coordinate, tuple]] = []
        root_managed: dict[tuple, dict] | None = None
        queue = deque([(dependency, (root,))])

        while queue:
            current, trail = queue.popleft()
            coordinate = current.coordinate
            winner = selected.get(coordinate.key)
            if winner is not None:
                if winner != coordinate:
                    logger.debug(f"{coordinate} omitted for conflict with {winner}")
                continue
            selected[coordinate.key] = coordinate
            ordered.append((coordinate, trail))

            model = self.load_model(coordinate.pom(), repositories, trail)
            if root_managed is None:
                root_managed = model.managed

            for raw in model.dependencies:
                child = self._child_dependency(raw, model, root_managed, current, trail)
                if child is not None:
                    queue.append((child, trail + (child.coordinate,)))
        return ordered

    def _child_dependency(self, raw: dict, model: ProjectModel, root_managed: dict,
                          parent: Dependency, trail: tuple) -> Dependency | None:
        key = _management_key(raw)
        managed = model.managed.get(key, {})
        # The requested artifact's own management overrides everything below its direct dependencies
        forced = root_managed.get(key, {}) if len(trail) > 1 else {}
        scope = forced.get("scope") or raw["scope"] or managed.get("scope") or "compile"
        if scope not in TRANSITIVE_SCOPES:
            return None
        if raw["optional"].lower() == "true":
            return None

        version = forced.get("version") or raw["version"] or managed.get("version", "")
        dep_type = raw["type"] or "jar"
        extension, classifier = TYPE_EXTENSIONS.get(dep_type, (dep_type, ""))
        coordinate = Coordinate(raw["groupId"], raw["artifactId"], version,
                                extension, raw["classifier"] or classifier)
        if parent.excludes(coordinate):
            logger.debug(f"{coordinate} excluded by {parent.coordinate}")
            return None
        self._check_version(version, coordinate, trail + (coordinate,))

        exclusions = tuple(raw["exclusions"]) + tuple(managed.get("exclusions", ())) + parent.exclusions
        return Dependency(coordinate, scope, False, exclusions)

    @staticmethod
    def _check_version(version: str, coordinate: Coordinate, trail: tuple):
        if not version:
            raise ResolutionError(f"No version declared or managed for {coordinate.group_id}:{coordinate.artifact_id}",
                                  trail=trail)
        if has_placeholder(version):
            raise ResolutionError(f"Unresolved property in version of {coordinate}", trail=trail)
        if is_version_range(version):
            raise ResolutionError(f"Version ranges are not supported: {coordinate}", trail=trail)

    # --- Project models ---

    def load_model(self, pom_coordinate: Coordinate, repositories: Sequence[RemoteRepository],
                   trail: tuple, depth: int = 0) -> ProjectModel:
        """Effective model of a POM: parent chain, BOM imports and properties applied."""
        with self._models_lock:
            cached = self._models.get(pom_coordinate)
        if cached is not None:
            return cached
        if depth > MAX_PARENT_DEPTH:
            raise ResolutionError(f"Parent chain too deep at {pom_coordinate}", trail=trail)

        pom = self.read_pom(pom_coordinate, repositories, trail)
        model = ProjectModel(pom_coordinate)
        if pom.parent:
            parent = self.load_model(pom.parent, repositories, trail + (pom.parent,), depth + 1)
            model.properties.update(parent.properties)
            model.raw_managed = list(parent.raw_managed)
            model.raw_dependencies = list(parent.raw_dependencies)

        model.properties.update(pom.properties)
        model.properties.update(project_properties(pom))
        # Inherited declarations are interpolated in this POM's context
        model.raw_managed += pom.managed_dependencies
        model.raw_dependencies += pom.dependencies

        imports = []
        for raw in model.raw_managed:
            entry = _interpolated(raw, model.properties)
            if entry["scope"] == "import" and entry["type"] == "pom":
                imports.append(entry)
            else:
                model.managed[_management_key(entry)] = entry
        for entry in imports:
            bom = Coordinate(entry["groupId"], entry["artifactId"], entry["version"], "pom")
            self._check_version(entry["version"], bom, trail + (bom,))
            imported = self.load_model(bom, repositories, trail + (bom,), depth + 1)
            for key, managed in imported.managed.items():
                model.managed.setdefault(key, managed)

        dependencies = {}
        for raw in model.raw_dependencies:
            entry = _interpolated(raw, model.properties)
            key = _management_key(entry)
            dependencies.pop(key, None)
            dependencies[key] = entry
        model.dependencies = list(dependencies.values())

        with self._models_lock:
            self._models[pom_coordinate] = model
        return model

    def read_pom(self, pom_coordinate: Coordinate, repositories: Sequence[RemoteRepository],
                 trail: tuple) -> PomInfo:
        local_path = self.local_repository / pom_coordinate.pom_path
        if not local_path.exists():
            self._transfer(pom_coordinate, pom_coordinate.pom_path, local_path, repositories, trail)
        try:
            return parse_pom(local_path.read_bytes())
        except (ValueError, OSError) as e:
            raise ResolutionError(f"Failed to read artifact descriptor for {pom_coordinate}: {e}",
                                  trail=trail) from e

    # --- Artifact download ---

    def download_all(self, nodes: list[tuple[Coordinate, tuple]],
                     repositories: Sequence[RemoteRepository]) -> list[ArtifactResult]:
        results: list[ArtifactResult | None] = [None] * len(nodes)
        with tqdm(total=len(nodes), unit="artifact", desc="Downloading", disable=not self.show_progress) as pbar:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="Download") as executor:
                futures = {
                    executor.submit(self.fetch_artifact, coordinate, repositories, trail): index
                    for index, (coordinate, trail) in enumerate(nodes)
                }
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
                    pbar.update(1)
        return results

    def fetch_artifact(self, coordinate: Coordinate, repositories: Sequence[RemoteRepository],
                       trail: tuple) -> ArtifactResult:
        local_path = self.local_repository / coordinate.path
        if local_path.exists():
            logger.debug(f"Using cached {coordinate}: {local_path}")
            return ArtifactResult(coordinate, local_path)
        repository = self._transfer(coordinate, coordinate.path, local_path, repositories, trail)
        return ArtifactResult(coordinate, local_path, repository)

    def _transfer(self, coordinate: Coordinate, path: str, local_path: Path,
                  repositories: Sequence[RemoteRepository], trail: tuple) -> RemoteRepository:
        """Downloads path from the first repository that has it."""
        for repository in repositories:
            repo_file = RepoFile(url=repository_url(repository, path), local_path=local_path)
            try:
                if download_file(repo_file, self.session, checksum_policy=self.checksum_policy):
                    return repository
            except ResolutionError as e:
                raise ResolutionError(
                    f"Could not transfer {coordinate} from {repository.name} ({repository.url}): {e}",
                    trail=trail) from e
        names = ", ".join(f"{r.name} ({r.url})" for r in repositories) or "no repositories"
        raise ResolutionError(f"Could not find artifact {coordinate} in {names}", trail=trail)
