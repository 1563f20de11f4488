"""
Tests for license evidence matching between revisions
"""
import pytest

from clearcurate.license.matcher import LicenseMatcher, MatchInput, is_license_file, latest_version
from clearcurate.models.coordinates import EntityCoordinates


def npm_input(revision, files=None, license_=None):
    harvest = {}
    if license_:
        harvest = {"clearlydefined": {"1.5.0": {"registryData": {"manifest": {"license": license_}}}}}
    definition = {
        "coordinates": {"type": "npm", "provider": "npmjs", "name": "redie", "revision": revision},
        "files": files or [],
    }
    return MatchInput(definition=definition, harvest=harvest)


def nuget_input(revision, manifest):
    return MatchInput(
        definition={"coordinates": {"type": "nuget", "provider": "nuget", "name": "Acme.Core", "revision": revision}},
        harvest={"clearlydefined": {"1.2.0": {"manifest": manifest}}},
    )


@pytest.mark.parametrize("path,coordinates,expected", [
    ("LICENSE", None, True),
    ("license.md", None, True),
    ("COPYING.txt", None, True),
    ("docs/LICENSE", None, False),
    ("package/LICENSE", "npm/npmjs/-/redie/0.3.0", True),
    ("package/LICENSE", "maven/mavencentral/org/lib/1.0.0", False),
    ("META-INF/LICENSE.txt", "maven/mavencentral/org/lib/1.0.0", True),
    ("requests-2.0.0/LICENSE", "pypi/pypi/-/requests/2.0.0", True),
    ("LICENSE.rst", None, False),
])
def test_is_license_file(path, coordinates, expected):
    assert is_license_file(path, EntityCoordinates.from_string(coordinates)) is expected


def test_latest_version():
    assert latest_version(["1.2.0", "1.10.0", "1.9.3"]) == "1.10.0"
    assert latest_version(["1.0.0", "2.0.0-beta"]) == "1.0.0"
    assert latest_version([]) is None


def test_license_file_hash_match():
    file = {"path": "package/LICENSE", "hashes": {"sha1": "abc", "sha256": "def"}, "token": "t1"}
    result = LicenseMatcher().process(npm_input("1.0.0", [file]), npm_input("1.1.0", [dict(file)]))
    assert result.is_matching
    assert {m["propPath"] for m in result.match} == {"hashes.sha1", "hashes.sha256", "token"}
    assert all(m["file"] == "package/LICENSE" for m in result.match)


def test_license_file_hash_mismatch():
    source = npm_input("1.0.0", [{"path": "LICENSE", "hashes": {"sha1": "abc"}}])
    target = npm_input("1.1.0", [{"path": "LICENSE", "hashes": {"sha1": "xyz"}}])
    result = LicenseMatcher().process(source, target)
    assert not result.is_matching
    assert result.mismatch[0]["source"] == "abc"
    assert result.mismatch[0]["target"] == "xyz"


def test_non_license_files_are_ignored():
    source = npm_input("1.0.0", [{"path": "index.js", "hashes": {"sha1": "abc"}}])
    target = npm_input("1.1.0", [{"path": "index.js", "hashes": {"sha1": "xyz"}}])
    result = LicenseMatcher().process(source, target)
    assert not result.is_matching
    assert result.mismatch == []


def test_registry_metadata_match():
    result = LicenseMatcher().process(npm_input("1.0.0", license_="MIT"), npm_input("1.1.0", license_="MIT"))
    assert result.is_matching
    assert result.match == [
        {"policy": "harvest", "propPath": "registryData.manifest.license", "value": "MIT"}
    ]


def test_conflicting_evidence_is_not_a_match():
    file = {"path": "LICENSE", "hashes": {"sha1": "abc"}}
    result = LicenseMatcher().process(
        npm_input("1.0.0", [file], license_="MIT"), npm_input("1.1.0", [dict(file)], license_="ISC")
    )
    assert not result.is_matching
    assert result.match == []


def test_no_evidence_is_not_a_match():
    assert not LicenseMatcher().process(npm_input("1.0.0"), npm_input("1.1.0")).is_matching


def test_nuget_github_license_url_is_not_a_match():
    manifest = {"licenseUrl": "https://github.com/acme/core/blob/main/LICENSE"}
    result = LicenseMatcher().process(nuget_input("1.0.0", manifest), nuget_input("1.1.0", dict(manifest)))
    assert not result.is_matching


def test_nuget_license_expression_match():
    manifest = {"licenseExpression": "MIT"}
    result = LicenseMatcher().process(nuget_input("1.0.0", manifest), nuget_input("1.1.0", dict(manifest)))
    assert result.is_matching
