"""Builders for SCORM manifests and package archives used across tests."""

import io
import zipfile
from typing import Dict, Optional, Union

NS_12 = (
    'xmlns="http://www.imsproject.org/xsd/imscp_rootv1p1p2" '
    'xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_rootv1p2"'
)
NS_2004 = (
    'xmlns="http://www.imsglobal.org/xsd/imscp_v1p1" '
    'xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_v1p3" '
    'xmlns:imsss="http://www.imsglobal.org/xsd/imsss"'
)


def item(
    identifier: str,
    title: str,
    ref: Optional[str] = None,
    children: str = "",
    extra: str = "",
    attrs: str = "",
) -> str:
    ref_attr = f' identifierref="{ref}"' if ref else ""
    return (
        f'<item identifier="{identifier}"{ref_attr} {attrs}>'
        f"<title>{title}</title>{extra}{children}</item>"
    )


def resource(
    identifier: str,
    href: Optional[str],
    base: Optional[str] = None,
    scorm_type: str = "sco",
    type_attr: str = "adlcp:scormtype",
) -> str:
    href_attr = f' href="{href}"' if href is not None else ""
    base_attr = f' xml:base="{base}"' if base else ""
    return (
        f'<resource identifier="{identifier}" type="webcontent" '
        f'{type_attr}="{scorm_type}"{href_attr}{base_attr}>'
        f'<file href="{href or "x"}"/></resource>'
    )


def organization(identifier: str, title: str, items: str) -> str:
    return (
        f'<organization identifier="{identifier}">'
        f"<title>{title}</title>{items}</organization>"
    )


def manifest(
    organizations: str,
    resources: str,
    schema_version: Optional[str] = "1.2",
    default_org: Optional[str] = "ORG-1",
    identifier: str = "MANIFEST-1",
    namespaces: str = NS_12,
) -> bytes:
    metadata = (
        "<metadata><schema>ADL SCORM</schema>"
        f"<schemaversion>{schema_version}</schemaversion></metadata>"
        if schema_version is not None
        else ""
    )
    default_attr = f' default="{default_org}"' if default_org else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<manifest identifier="{identifier}" version="1.0" {namespaces}>'
        f"{metadata}"
        f"<organizations{default_attr}>{organizations}</organizations>"
        f"<resources>{resources}</resources>"
        "</manifest>"
    ).encode("utf-8")


def single_sco_manifest(href: str = "index.html", title: str = "Course") -> bytes:
    return manifest(
        organization(
            "ORG-1", title, item("ITEM-1", "Lesson 1", ref="RES-1")
        ),
        resource("RES-1", href),
    )


def grouped_manifest() -> bytes:
    """Three top-level items, the middle one a group with two children."""
    items = (
        item("ITEM-A", "Intro", ref="RES-A")
        + item(
            "GROUP-B",
            "Module B",
            children=(
                item("ITEM-B1", "Part 1", ref="RES-B1")
                + item("ITEM-B2", "Part 2", ref="RES-B2")
            ),
        )
        + item("ITEM-C", "Wrap up", ref="RES-C")
    )
    resources = (
        resource("RES-A", "a/index.html")
        + resource("RES-B1", "b/part1.html")
        + resource("RES-B2", "b/part2.html")
        + resource("RES-C", "c/index.html")
    )
    return manifest(organization("ORG-1", "Grouped Course", items), resources)


GROUPED_FILES = ["a/index.html", "b/part1.html", "b/part2.html", "c/index.html"]


def make_zip(files: Dict[str, Union[bytes, str]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(name, content)
    return buffer.getvalue()


def single_sco_package(prefix: str = "") -> bytes:
    return make_zip(
        {
            f"{prefix}imsmanifest.xml": single_sco_manifest(),
            f"{prefix}index.html": "<html><body>Lesson 1</body></html>",
            f"{prefix}images/logo.png": b"\x89PNG\r\n\x1a\nlogo",
        }
    )


def grouped_package() -> bytes:
    files: Dict[str, Union[bytes, str]] = {"imsmanifest.xml": grouped_manifest()}
    for path in GROUPED_FILES:
        files[path] = f"<html><body>{path}</body></html>"
    return make_zip(files)


def auth_headers(
    user: str = "learner-1", tenant: str = "tenant-a", role: str = "student"
) -> Dict[str, str]:
    return {"X-User-Id": user, "X-Tenant-Id": tenant, "X-User-Role": role}


INSTRUCTOR = auth_headers("instructor-1", "tenant-a", "instructor")
LEARNER = auth_headers("learner-1", "tenant-a", "student")
OTHER_TENANT_LEARNER = auth_headers("learner-9", "tenant-b", "student")
SUPER_ADMIN = auth_headers("root", "platform", "super_admin")


def assert_response_success(response, expected_status=200):
    """Assert that response is successful"""
    assert response.status_code == expected_status, (
        f"Expected {expected_status}, got {response.status_code}: "
        f"{response.text}"
    )


def assert_response_error(response, expected_status=400, code=None):
    """Assert that response is an error in the common envelope"""
    assert response.status_code == expected_status, (
        f"Expected error {expected_status}, got {response.status_code}: "
        f"{response.text}"
    )
    body = response.json()
    assert body["success"] is False
    if code is not None:
        assert body.get("code") == code, body


async def upload_package(client, archive=None, headers=None, **form):
    """POST an archive to the upload endpoint and return the response"""
    return await client.post(
        "/api/v1/scorm/packages",
        files={
            "file": ("course.zip", archive or grouped_package(),
                     "application/zip")
        },
        data=form,
        headers=headers or INSTRUCTOR,
    )
