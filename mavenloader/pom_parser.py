import re
import logging
import xml.etree.ElementTree as ET

from .models import Coordinate, PomInfo

logger = logging.getLogger(__name__)

PROPERTY_PATTERN = re.compile(r"\$\{([^}]+)\}")
MAX_INTERPOLATION_DEPTH = 10

def _strip_namespaces(root: ET.Element):
    # Drop the maven namespace, if declared
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith("{"):
            element.tag = element.tag.split("}", 1)[1]

def _text(element: ET.Element | None, path: str, default: str = "") -> str:
    if element is None:
        return default
    child = element.find(path)
    if child is None or child.text is None:
        return default
    return child.text.strip()

def _parse_dependency(element: ET.Element) -> dict:
    exclusions = []
    for exclusion in element.findall("exclusions/exclusion"):
        group = _text(exclusion, "groupId", "*")
        artifact = _text(exclusion, "artifactId", "*")
        exclusions.append((group, artifact))
    return {
        "groupId": _text(element, "groupId"),
        "artifactId": _text(element, "artifactId"),
        "version": _text(element, "version"),
        "type": _text(element, "type", "jar"),
        "classifier": _text(element, "classifier"),
        "scope": _text(element, "scope"),
        "optional": _text(element, "optional", "false"),
        "exclusions": exclusions,
    }

def parse_pom(content: bytes) -> PomInfo:
    """
    Parses a POM into a PomInfo. Values are returned as written; property
    placeholders are interpolated later, once the parent chain is known.
    Raises ValueError if the content is not a usable POM.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ValueError(f"Malformed POM: {e}") from e
    _strip_namespaces(root)
    if root.tag != "project":
        raise ValueError(f"Not a POM, root element is <{root.tag}>")

    parent = None
    parent_element = root.find("parent")
    if parent_element is not None:
        parent_group = _text(parent_element, "groupId")
        parent_artifact = _text(parent_element, "artifactId")
        parent_version = _text(parent_element, "version")
        if parent_group and parent_artifact and parent_version:
            parent = Coordinate(parent_group, parent_artifact, parent_version, "pom")
        else:
            logger.warning(f"Ignoring incomplete <parent> in POM of {_text(root, 'artifactId')}")

    # groupId and version are inherited from the parent when omitted
    group_id = _text(root, "groupId") or (parent.group_id if parent else "")
    version = _text(root, "version") or (parent.version if parent else "")
    artifact_id = _text(root, "artifactId")
    if not artifact_id:
        raise ValueError("POM has no artifactId")

    properties = {}
    properties_element = root.find("properties")
    if properties_element is not None:
        for prop in properties_element:
            if isinstance(prop.tag, str):
                properties[prop.tag] = (prop.text or "").strip()

    return PomInfo(
        group_id=group_id,
        artifact_id=artifact_id,
        version=version,
        packaging=_text(root, "packaging", "jar"),
        parent=parent,
        properties=properties,
        dependencies=[_parse_dependency(d) for d in root.findall("dependencies/dependency")],
        managed_dependencies=[_parse_dependency(d) for d in root.findall("dependencyManagement/dependencies/dependency")],
    )

def project_properties(pom: PomInfo) -> dict[str, str]:
    """Built-in project.* properties for a POM (and their legacy pom.* aliases)."""
    values = {
        "groupId": pom.group_id,
        "artifactId": pom.artifact_id,
        "version": pom.version,
        "packaging": pom.packaging,
    }
    if pom.parent:
        values["parent.groupId"] = pom.parent.group_id
        values["parent.artifactId"] = pom.parent.artifact_id
        values["parent.version"] = pom.parent.version
    props = {}
    for key, value in values.items():
        props[f"project.{key}"] = value
        props[f"pom.{key}"] = value
    props["version"] = pom.version
    return props

def interpolate(value: str, properties: dict[str, str]) -> str:
    """Replaces ${name} placeholders. Unknown placeholders are left in place."""
    for _ in range(MAX_INTERPOLATION_DEPTH):
        replaced = PROPERTY_PATTERN.sub(lambda m: properties.get(m.group(1), m.group(0)), value)
        if replaced == value:
            break
        value = replaced
    return value

def has_placeholder(value: str) -> bool:
    return PROPERTY_PATTERN.search(value) is not None

def is_version_range(version: str) -> bool:
    return version[:1] in ("[", "(") or "," in version
