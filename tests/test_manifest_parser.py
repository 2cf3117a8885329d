"""
Manifest parser tests
Ordering, grouping, path normalization, versions and error cases
"""

import pytest

from scorm_backend.services.exceptions import (
    ManifestEmpty,
    ManifestInvalid,
    ManifestUnsupportedVersion,
)
from scorm_backend.services.manifest_parser import (
    normalize_entry_path,
    parse_manifest,
)
from scorm_fixtures import (
    NS_2004,
    grouped_manifest,
    item,
    manifest,
    organization,
    resource,
    single_sco_manifest,
)


class TestOrderingAndGrouping:
    def test_grouping_node_is_skipped_but_children_kept(self):
        descriptor = parse_manifest(grouped_manifest())

        identifiers = [c.identifier for c in descriptor.content_objects]
        assert identifiers == ["ITEM-A", "ITEM-B1", "ITEM-B2", "ITEM-C"]
        assert [c.ordinal for c in descriptor.content_objects] == [0, 1, 2, 3]
        assert descriptor.content_objects[1].entry_path == "b/part1.html"

    def test_nested_groups_preserve_document_order(self):
        items = item(
            "G1",
            "Outer",
            children=(
                item("I1", "One", ref="R1")
                + item("G2", "Inner", children=item("I2", "Two", ref="R2"))
                + item("I3", "Three", ref="R3")
            ),
        ) + item("I4", "Four", ref="R4")
        resources = "".join(
            resource(f"R{n}", f"p{n}.html") for n in range(1, 5)
        )
        descriptor = parse_manifest(
            manifest(organization("ORG-1", "Nested", items), resources)
        )

        assert [c.identifier for c in descriptor.content_objects] == [
            "I1", "I2", "I3", "I4"
        ]

    def test_titles_fall_back_to_identifier(self):
        raw = manifest(
            organization(
                "ORG-1",
                "Course",
                '<item identifier="NO-TITLE" identifierref="R1"/>',
            ),
            resource("R1", "index.html"),
        )
        descriptor = parse_manifest(raw)
        assert descriptor.content_objects[0].title == "NO-TITLE"
        assert descriptor.title == "Course"

    def test_resource_without_href_is_a_group(self):
        items = item("ASSET", "Shared", ref="R-ASSET") + item(
            "I1", "Lesson", ref="R1"
        )
        resources = resource("R-ASSET", None, scorm_type="asset") + resource(
            "R1", "index.html"
        )
        descriptor = parse_manifest(
            manifest(organization("ORG-1", "C", items), resources)
        )
        assert [c.identifier for c in descriptor.content_objects] == ["I1"]
        assert descriptor.content_objects[0].ordinal == 0


class TestOrganizationSelection:
    def _two_orgs(self, default_org):
        orgs = organization(
            "ORG-1", "First", item("I1", "From first", ref="R1")
        ) + organization("ORG-2", "Second", item("I2", "From second", ref="R2"))
        resources = resource("R1", "one.html") + resource("R2", "two.html")
        return manifest(orgs, resources, default_org=default_org)

    def test_default_organization_is_used(self):
        descriptor = parse_manifest(self._two_orgs("ORG-2"))
        assert descriptor.organization_identifier == "ORG-2"
        assert descriptor.content_objects[0].identifier == "I2"

    def test_first_declared_when_no_default(self):
        descriptor = parse_manifest(self._two_orgs(None))
        assert descriptor.organization_identifier == "ORG-1"
        assert descriptor.title == "First"

    def test_unknown_default_falls_back_to_first(self):
        descriptor = parse_manifest(self._two_orgs("ORG-404"))
        assert descriptor.organization_identifier == "ORG-1"


class TestEntryPaths:
    def test_xml_base_is_prepended(self):
        raw = manifest(
            organization("ORG-1", "C", item("I1", "L", ref="R1")),
            resource("R1", "index.html", base="content/"),
        )
        descriptor = parse_manifest(raw)
        assert descriptor.content_objects[0].entry_path == "content/index.html"

    def test_query_string_becomes_launch_parameters(self):
        raw = manifest(
            organization(
                "ORG-1",
                "C",
                item("I1", "L", ref="R1", attrs='parameters="?mode=review"'),
            ),
            resource("R1", "player.html?lesson=3"),
        )
        co = parse_manifest(raw).content_objects[0]
        assert co.entry_path == "player.html"
        assert co.launch_parameters == "lesson=3&mode=review"

    def test_dot_segments_are_normalized(self):
        assert normalize_entry_path("a/./b/../index.html") == "a/index.html"

    @pytest.mark.parametrize(
        "href",
        ["../outside.html", "a/../../outside.html", "/etc/passwd",
         "http://example.com/x.html", "javascript:alert(1)"],
    )
    def test_escaping_paths_are_rejected(self, href):
        raw = manifest(
            organization("ORG-1", "C", item("I1", "L", ref="R1")),
            resource("R1", href),
        )
        with pytest.raises(ManifestInvalid):
            parse_manifest(raw)


class TestVersionsAndMetadata:
    def test_missing_schema_version_defaults_to_12(self):
        raw = manifest(
            organization("ORG-1", "C", item("I1", "L", ref="R1")),
            resource("R1", "index.html"),
            schema_version=None,
        )
        assert parse_manifest(raw).schema_version == "1.2"

    def test_scorm_2004_with_sequencing_mastery(self):
        sequencing = (
            "<imsss:sequencing><imsss:objectives>"
            '<imsss:primaryObjective objectiveID="PRIMARY" '
            'satisfiedByMeasure="true">'
            "<imsss:minNormalizedMeasure>0.8</imsss:minNormalizedMeasure>"
            "</imsss:primaryObjective>"
            "</imsss:objectives></imsss:sequencing>"
        )
        raw = manifest(
            organization(
                "ORG-1", "C", item("I1", "L", ref="R1", extra=sequencing)
            ),
            resource("R1", "index.html", type_attr="adlcp:scormType"),
            schema_version="2004 4th Edition",
            namespaces=NS_2004,
        )
        descriptor = parse_manifest(raw)
        assert descriptor.scorm_family == "2004"
        assert descriptor.content_objects[0].mastery_score == 80.0
        assert descriptor.content_objects[0].scorm_type == "sco"

    def test_scorm_12_mastery_and_prerequisites(self):
        extra = (
            "<adlcp:masteryscore>75</adlcp:masteryscore>"
            '<adlcp:prerequisites type="aicc_script">I0</adlcp:prerequisites>'
        )
        raw = manifest(
            organization("ORG-1", "C", item("I1", "L", ref="R1", extra=extra)),
            resource("R1", "index.html"),
        )
        co = parse_manifest(raw).content_objects[0]
        assert co.mastery_score == 75.0
        assert co.prerequisites == "I0"

    def test_unsupported_version(self):
        raw = manifest(
            organization("ORG-1", "C", item("I1", "L", ref="R1")),
            resource("R1", "index.html"),
            schema_version="3.0",
        )
        with pytest.raises(ManifestUnsupportedVersion):
            parse_manifest(raw)


class TestManifestErrors:
    def test_malformed_xml(self):
        with pytest.raises(ManifestInvalid):
            parse_manifest(b"<manifest><organizations>")

    def test_wrong_root_element(self):
        with pytest.raises(ManifestInvalid):
            parse_manifest(b"<package/>")

    def test_missing_resources(self):
        raw = (
            b'<manifest identifier="M"><organizations>'
            b'<organization identifier="O"/></organizations></manifest>'
        )
        with pytest.raises(ManifestInvalid):
            parse_manifest(raw)

    def test_no_organization(self):
        raw = manifest("", resource("R1", "index.html"))
        with pytest.raises(ManifestInvalid):
            parse_manifest(raw)

    def test_duplicate_item_identifiers(self):
        items = item("I1", "A", ref="R1") + item("I1", "B", ref="R1")
        raw = manifest(
            organization("ORG-1", "C", items), resource("R1", "index.html")
        )
        with pytest.raises(ManifestInvalid):
            parse_manifest(raw)

    def test_only_grouping_items_is_empty(self):
        raw = manifest(
            organization("ORG-1", "C", item("G", "Group")),
            resource("R1", "index.html"),
        )
        with pytest.raises(ManifestEmpty):
            parse_manifest(raw)

    def test_single_sco(self):
        descriptor = parse_manifest(single_sco_manifest())
        assert len(descriptor.content_objects) == 1
        assert descriptor.identifier == "MANIFEST-1"
