"""Package and asset file-name grammar.

RPM assets are named ``{package}-{version}-{release}.{distro}{distro_version}.{arch}.rpm``
(``alumet-agent-1.2.3-4.el8.3.x86_64.rpm``); a dot between distro and
distro version is accepted too. DEB assets carry no distro part:
``{package}-{version}-{release}.{arch}.deb`` or the Debian native
``{package}_{version}-{release}_{arch}.deb``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Loose search used to recover (version, release) from any asset name.
_VERSION_RELEASE_RE = re.compile(r"([0-9.]{3,})-([0-9]+)")

_VERSION_RE = re.compile(r"^[0-9][0-9.]*[0-9]$")

_RPM_RE = re.compile(
    r"^(?P<package>.+?)-(?P<version>[0-9][0-9.]*)-(?P<release>[0-9]+)"
    r"\.(?P<distro>[a-z]+)\.?(?P<distro_version>[0-9][0-9.]*?)"
    r"\.(?P<arch>[A-Za-z0-9_]+)\.(?P<ext>rpm)$"
)

_DEB_RE = re.compile(
    r"^(?P<package>.+?)[-_](?P<version>[0-9][0-9.]*)-(?P<release>[0-9]+)"
    r"[._](?P<arch>[A-Za-z0-9_]+)\.(?P<ext>deb)$"
)


@dataclass(frozen=True, slots=True)
class AssetName:
    package: str
    version: str
    release: int
    arch: str
    ext: str
    distro: str | None = None
    distro_version: str | None = None


def strip_tag_marker(tag: str) -> str:
    """Drop one leading ``v``/``V`` from a release tag."""
    tag = tag.strip()
    if tag[:1] in ("v", "V"):
        return tag[1:]
    return tag


def is_valid_version(version: str) -> bool:
    return len(version) >= 3 and _VERSION_RE.match(version) is not None


def version_key(version: str) -> tuple[int, ...]:
    """Numeric sort key for a dotted version (``1.10.0`` > ``1.9.9``)."""
    return tuple(int(part) for part in version.split(".") if part)


def extract_version_release(name: str) -> tuple[str, int] | None:
    """Find the first ``<version>-<release>`` fragment in an asset name."""
    for m in _VERSION_RELEASE_RE.finditer(name):
        version = m.group(1).strip(".")
        if version_key(version):
            return (version, int(m.group(2)))
    return None


def parse_asset_name(name: str) -> AssetName | None:
    m = _RPM_RE.match(name)
    if m is not None:
        return AssetName(
            package=m.group("package"),
            version=m.group("version"),
            release=int(m.group("release")),
            arch=m.group("arch"),
            ext=m.group("ext"),
            distro=m.group("distro"),
            distro_version=m.group("distro_version"),
        )

    m = _DEB_RE.match(name)
    if m is not None:
        return AssetName(
            package=m.group("package"),
            version=m.group("version"),
            release=int(m.group("release")),
            arch=m.group("arch"),
            ext=m.group("ext"),
        )

    return None


def format_rpm_name(
    *, package: str, version: str, release: int, distro: str, distro_version: str, arch: str
) -> str:
    return f"{package}-{version}-{release}.{distro}{distro_version}.{arch}.rpm"
