"""
SCORM manifest parser

Turns ``imsmanifest.xml`` bytes into an ordered list of launchable content
object descriptors. Elements are matched by local name so SCORM 1.2 and 2004
manifests (and vendors that omit or rename namespace prefixes) parse the same
way. The organization is first read into a typed tree of group and leaf nodes
and then walked in document order, so grouping items never disturb the
sequencing order of the leaves beneath them.
"""

import logging
import posixpath
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union
from urllib.parse import unquote

from scorm_backend.services.exceptions import (
    ManifestEmpty,
    ManifestInvalid,
    ManifestUnsupportedVersion,
)

logger = logging.getLogger(__name__)

XML_BASE = "{http://www.w3.org/XML/1998/namespace}base"

# schemaversion (lower-cased) -> SCORM family
SUPPORTED_SCHEMA_VERSIONS = {
    "1.2": "1.2",
    "cam 1.3": "2004",
    "2004 2nd edition": "2004",
    "2004 3rd edition": "2004",
    "2004 4th edition": "2004",
}
DEFAULT_SCHEMA_VERSION = "1.2"

_URL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


@dataclass
class ResourceInfo:
    identifier: str
    href: Optional[str]
    base: str
    scorm_type: str


@dataclass
class LeafNode:
    """Item that references a launchable resource."""

    identifier: str
    title: str
    resource: ResourceInfo
    parameters: Optional[str]
    mastery_score: Optional[float]
    prerequisites: Optional[str]
    children: List["TreeNode"] = field(default_factory=list)


@dataclass
class GroupNode:
    """Item without a launchable resource (pure grouping)."""

    identifier: str
    title: str
    children: List["TreeNode"] = field(default_factory=list)


TreeNode = Union[LeafNode, GroupNode]


@dataclass
class ContentObjectDescriptor:
    identifier: str
    title: str
    ordinal: int
    entry_path: str
    launch_parameters: Optional[str] = None
    resource_identifier: Optional[str] = None
    scorm_type: str = "sco"
    mastery_score: Optional[float] = None
    prerequisites: Optional[str] = None


@dataclass
class ManifestDescriptor:
    identifier: Optional[str]
    title: str
    schema_version: str
    scorm_family: str
    organization_identifier: Optional[str]
    content_objects: List[ContentObjectDescriptor]


# Element helpers ------------------------------------------------------------
def _local(tag: str) -> str:
    """Strip ``{namespace}`` from an element tag."""
    if not isinstance(tag, str):  # comments / processing instructions
        return ""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _descendant(element: ET.Element, *path: str) -> Optional[ET.Element]:
    current: Optional[ET.Element] = element
    for name in path:
        if current is None:
            return None
        current = _child(current, name)
    return current


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    value = element.text.strip()
    return value or None


def _attr(element: ET.Element, name: str) -> Optional[str]:
    """Attribute by local name, tolerating any namespace prefix."""
    if name in element.attrib:
        return element.attrib[name]
    for key, value in element.attrib.items():
        if _local(key) == name and key != XML_BASE:
            return value
    return None


# Path handling --------------------------------------------------------------
def _split_href(href: str) -> tuple:
    """Split ``page.html?x=1#top`` into path and launch parameters."""
    match = re.search(r"[?#]", href)
    if match is None:
        return href, None
    return href[:match.start()], href[match.start():]


def normalize_entry_path(*parts: str) -> str:
    """Join base/href fragments into a package-relative path.

    Raises ManifestInvalid for absolute paths, URLs and anything that would
    escape the package root.
    """
    joined = ""
    for part in parts:
        if not part:
            continue
        part = unquote(part.strip()).replace("\\", "/")
        if _URL_SCHEME_RE.match(part) or part.startswith("/"):
            raise ManifestInvalid(
                f"Resource path must be relative to the package: {part!r}"
            )
        joined = posixpath.join(joined, part) if joined else part
    if not joined or joined.endswith("/"):
        raise ManifestInvalid(f"Resource path does not name a file: {joined!r}")
    normalized = posixpath.normpath(joined)
    if normalized == ".." or normalized.startswith("../"):
        raise ManifestInvalid(
            f"Resource path escapes the package root: {joined!r}"
        )
    return normalized


def _merge_parameters(
    href_parameters: Optional[str], item_parameters: Optional[str]
) -> Optional[str]:
    """Combine query parameters from the href and the item, without ``?``."""
    pieces = []
    for raw in (href_parameters, item_parameters):
        if not raw:
            continue
        value = raw.strip()
        if value.startswith("#"):
            continue
        value = value.lstrip("?&")
        if value:
            pieces.append(value)
    return "&".join(pieces) or None


# Manifest sections ----------------------------------------------------------
def _schema_version(root: ET.Element) -> tuple:
    declared = _text(_descendant(root, "metadata", "schemaversion"))
    if declared is None:
        return DEFAULT_SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS["1.2"]
    family = SUPPORTED_SCHEMA_VERSIONS.get(declared.lower())
    if family is None:
        raise ManifestUnsupportedVersion(
            f"Unsupported SCORM schema version: {declared}",
            details={"schemaVersion": declared},
        )
    return declared, family


def _index_resources(root: ET.Element) -> Dict[str, ResourceInfo]:
    resources_el = _child(root, "resources")
    if resources_el is None:
        raise ManifestInvalid("Manifest has no <resources> element")
    section_base = resources_el.get(XML_BASE, "")
    index: Dict[str, ResourceInfo] = {}
    for resource in _children(resources_el, "resource"):
        identifier = resource.get("identifier")
        if not identifier:
            raise ManifestInvalid("Resource without identifier")
        base = posixpath.join(section_base, resource.get(XML_BASE, ""))
        index[identifier] = ResourceInfo(
            identifier=identifier,
            href=resource.get("href"),
            base=base,
            scorm_type=(_attr(resource, "scormType")
                        or _attr(resource, "scormtype")
                        or "sco").lower(),
        )
    return index


def _select_organization(root: ET.Element) -> ET.Element:
    organizations_el = _child(root, "organizations")
    if organizations_el is None:
        raise ManifestInvalid("Manifest has no <organizations> element")
    organizations = _children(organizations_el, "organization")
    if not organizations:
        raise ManifestInvalid("Manifest declares no organization")
    default_id = organizations_el.get("default")
    if default_id:
        for organization in organizations:
            if organization.get("identifier") == default_id:
                return organization
        logger.warning(
            "Default organization %s not found, using first declared",
            default_id,
        )
    return organizations[0]


def _mastery_score(item: ET.Element) -> Optional[float]:
    raw = _text(_child(item, "masteryscore"))
    if raw is not None:
        try:
            return float(raw)
        except ValueError:
            raise ManifestInvalid(
                f"Invalid masteryscore {raw!r} on item {item.get('identifier')}"
            )
    primary = _descendant(item, "sequencing", "objectives", "primaryObjective")
    if primary is not None:
        measure = _text(_child(primary, "minNormalizedMeasure"))
        if measure is not None:
            try:
                return round(float(measure) * 100, 4)
            except ValueError:
                raise ManifestInvalid(
                    f"Invalid minNormalizedMeasure {measure!r}"
                )
    return None


def _build_node(
    item: ET.Element,
    resources: Dict[str, ResourceInfo],
    seen: set,
) -> TreeNode:
    identifier = item.get("identifier")
    if not identifier:
        raise ManifestInvalid("Item without identifier")
    if identifier in seen:
        raise ManifestInvalid(f"Duplicate item identifier: {identifier}")
    seen.add(identifier)
    title = _text(_child(item, "title")) or identifier
    children = [
        _build_node(child, resources, seen) for child in _children(item, "item")
    ]

    ref = item.get("identifierref")
    resource = resources.get(ref) if ref else None
    if ref and resource is None:
        logger.warning(
            "Item %s references unknown resource %s; treating as group",
            identifier,
            ref,
        )
    if resource is None or not resource.href:
        return GroupNode(identifier=identifier, title=title, children=children)
    return LeafNode(
        identifier=identifier,
        title=title,
        resource=resource,
        parameters=item.get("parameters"),
        mastery_score=_mastery_score(item),
        prerequisites=_text(_child(item, "prerequisites")),
        children=children,
    )


def iter_leaves(nodes: List[TreeNode]) -> Iterator[LeafNode]:
    """Depth-first, document-order walk yielding launchable items."""
    for node in nodes:
        if isinstance(node, LeafNode):
            yield node
        yield from iter_leaves(node.children)


# Entry point ----------------------------------------------------------------
def parse_manifest(raw: bytes) -> ManifestDescriptor:
    """Parse manifest bytes into a :class:`ManifestDescriptor`."""
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise ManifestInvalid(f"Manifest is not well-formed XML: {exc}")
    if _local(root.tag) != "manifest":
        raise ManifestInvalid(
            f"Root element is <{_local(root.tag)}>, expected <manifest>"
        )

    schema_version, family = _schema_version(root)
    resources = _index_resources(root)
    organization = _select_organization(root)

    seen: set = set()
    tree = [
        _build_node(item, resources, seen)
        for item in _children(organization, "item")
    ]

    content_objects: List[ContentObjectDescriptor] = []
    for ordinal, leaf in enumerate(iter_leaves(tree)):
        href_path, href_parameters = _split_href(leaf.resource.href or "")
        content_objects.append(
            ContentObjectDescriptor(
                identifier=leaf.identifier,
                title=leaf.title,
                ordinal=ordinal,
                entry_path=normalize_entry_path(leaf.resource.base, href_path),
                launch_parameters=_merge_parameters(
                    href_parameters, leaf.parameters
                ),
                resource_identifier=leaf.resource.identifier,
                scorm_type=leaf.resource.scorm_type,
                mastery_score=leaf.mastery_score,
                prerequisites=leaf.prerequisites,
            )
        )

    if not content_objects:
        raise ManifestEmpty("Manifest declares no launchable items")

    title = (
        _text(_child(organization, "title"))
        or root.get("identifier")
        or "Untitled package"
    )
    return ManifestDescriptor(
        identifier=root.get("identifier"),
        title=title,
        schema_version=schema_version,
        scorm_family=family,
        organization_identifier=organization.get("identifier"),
        content_objects=content_objects,
    )
