from dataclasses import dataclass, field
from pathlib import Path
import logging
import math

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class MirrorEntry:
    """A named candidate endpoint for Maven Central."""
    name: str
    url: str

@dataclass
class ProbeResult:
    """Outcome of one liveness probe. Latency is in seconds, inf on failure."""
    url: str
    latency: float = math.inf
    ok: bool = False

@dataclass(frozen=True)
class RemoteRepository:
    """A named pointer to a remote Maven repository. 'type' is the layout."""
    name: str
    url: str
    type: str = "default"

@dataclass(frozen=True)
class Coordinate:
    """
    Maven artifact coordinate.
    String form: <groupId>:<artifactId>[:<extension>[:<classifier>]]:<version>
    """
    group_id: str
    artifact_id: str
    version: str
    extension: str = "jar"
    classifier: str = ""

    @classmethod
    def parse(cls, coords: str) -> "Coordinate":
        parts = coords.strip().split(":")
        if len(parts) < 3 or len(parts) > 5 or not all(parts[:2]) or not parts[-1]:
            raise ValueError(
                f"Bad artifact coordinates {coords!r}, expected format is "
                "<groupId>:<artifactId>[:<extension>[:<classifier>]]:<version>")
        extension = parts[2] if len(parts) >= 4 and parts[2] else "jar"
        classifier = parts[3] if len(parts) == 5 else ""
        return cls(parts[0], parts[1], parts[-1], extension, classifier)

    @property
    def key(self) -> tuple[str, str, str, str]:
        """Version-less identity used for conflict resolution."""
        return (self.group_id, self.artifact_id, self.extension, self.classifier)

    @property
    def base_dir(self) -> str:
        return f"{self.group_id.replace('.', '/')}/{self.artifact_id}/{self.version}"

    @property
    def path(self) -> str:
        """Repository-relative path of the artifact file (Maven 2 layout)."""
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.base_dir}/{self.artifact_id}-{self.version}{suffix}.{self.extension}"

    @property
    def pom_path(self) -> str:
        return f"{self.base_dir}/{self.artifact_id}-{self.version}.pom"

    def pom(self) -> "Coordinate":
        return Coordinate(self.group_id, self.artifact_id, self.version, "pom")

    def __str__(self):
        if self.classifier:
            return f"{self.group_id}:{self.artifact_id}:{self.extension}:{self.classifier}:{self.version}"
        if self.extension != "jar":
            return f"{self.group_id}:{self.artifact_id}:{self.extension}:{self.version}"
        return f"{self.group_id}:{self.artifact_id}:{self.version}"

@dataclass(frozen=True)
class Dependency:
    """A requested coordinate plus the scope and exclusions it was declared with."""
    coordinate: Coordinate
    scope: str | None = None
    optional: bool = False
    # (groupId, artifactId) pairs, either side may be '*'
    exclusions: tuple[tuple[str, str], ...] = ()

    def excludes(self, coordinate: Coordinate) -> bool:
        return any(
            g in ("*", coordinate.group_id) and a in ("*", coordinate.artifact_id)
            for g, a in self.exclusions
        )

    def __str__(self):
        return f"{self.coordinate} ({self.scope})" if self.scope else str(self.coordinate)

@dataclass
class ArtifactResult:
    """A resolved node: the coordinate and where its file landed locally."""
    coordinate: Coordinate
    path: Path | None = None
    repository: RemoteRepository | None = None

@dataclass
class RepoFile:
    """A single file to transfer from a remote repository into the local cache."""
    url: str
    local_path: Path

    # Identity is the URL
    def __hash__(self):
        return hash(self.url)

    def __eq__(self, other):
        if not isinstance(other, RepoFile):
            return NotImplemented
        return self.url == other.url

@dataclass
class PomInfo:
    """The parts of a POM the resolver needs."""
    group_id: str
    artifact_id: str
    version: str
    packaging: str = "jar"
    parent: Coordinate | None = None
    properties: dict[str, str] = field(default_factory=dict)
    # Raw (uninterpolated) dependency declarations, see pom_parser.parse_pom
    dependencies: list[dict] = field(default_factory=list)
    managed_dependencies: list[dict] = field(default_factory=list)
