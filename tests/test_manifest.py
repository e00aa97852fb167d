"""Tests for the manifest model and the .gitmodsrc configuration."""
import json

import pytest

from gitmods.core.config import RcConfig, load_rc
from gitmods.core.errors import ConfigError, ManifestError
from gitmods.core.reference import Target
from gitmods.modules.manifest import Manifest, TagProvenance, write_version_to_json_file


def test_manifest_round_trip_keeps_unknown_keys(tmp_path):
    """Test: rewriting a manifest never drops user data.

    Given: a manifest with a key gitmods does not know about
    When: it is loaded, modified and saved
    Then: the unknown key is still there and the change is persisted
    """
    path = tmp_path / "gitmods.json"
    path.write_text(json.dumps({
        "name": "main",
        "version": "0.1.0",
        "dependencies": {"dep1": "https://host/dep1.git#1.0.0"},
        "scripts": {"build": "make"},
    }))

    manifest = Manifest.load(path)
    manifest.version = "0.2.0"
    manifest.save(path)

    data = json.loads(path.read_text())
    assert data["scripts"] == {"build": "make"}
    assert data["version"] == "0.2.0"
    assert "tag" not in data


def test_manifest_references_are_parsed():
    manifest = Manifest(dependencies={"dep1": "git+https://host/dep1.git#1.0.0", "dep2": "https://host/dep2.git"})
    references = manifest.references()
    assert list(references) == ["dep1", "dep2"]
    assert references["dep1"].url == "https://host/dep1.git"
    assert references["dep2"].target == "master"


def test_manifest_invalid_json_raises():
    with pytest.raises(ManifestError):
        Manifest.from_json("{not json", source="broken")


def test_manifest_rejects_dependency_without_url():
    with pytest.raises(ManifestError):
        Manifest.from_json(json.dumps({"dependencies": {"dep1": "#1.0.0"}}))


def test_manifest_rejects_non_object():
    with pytest.raises(ManifestError):
        Manifest.from_json("[]")


class TestTagProvenance:
    """Provenance matching decides whether an existing tag can be reused."""

    def test_matches_by_branch(self):
        provenance = TagProvenance(commit="abc", branch="master")
        assert provenance.matches(Target.for_branch("master"), "abc")
        assert not provenance.matches(Target.for_branch("develop"), "abc")
        assert not provenance.matches(Target.for_branch("master"), "def")

    def test_matches_by_target_object(self):
        provenance = TagProvenance(commit="abc", target={"commit": "abc"})
        assert provenance.matches(Target.for_commit("abc"), "abc")
        assert not provenance.matches(Target.for_branch("abc"), "abc")

    def test_without_branch_or_target_never_matches(self):
        assert not TagProvenance(commit="abc").matches(Target.for_branch("master"), "abc")


def test_write_version_to_json_file(tmp_path):
    package_json = tmp_path / "package.json"
    package_json.write_text(json.dumps({"name": "x", "version": "0.0.1"}))

    assert write_version_to_json_file(package_json, "1.0.0")
    assert json.loads(package_json.read_text())["version"] == "1.0.0"
    assert not write_version_to_json_file(tmp_path / "bower.json", "1.0.0")


@pytest.mark.parametrize("contents", ["{not json", "[1, 2]"])
def test_malformed_metadata_file_raises_manifest_error(tmp_path, contents):
    package_json = tmp_path / "package.json"
    package_json.write_text(contents)

    with pytest.raises(ManifestError):
        write_version_to_json_file(package_json, "1.0.0")
    assert package_json.read_text() == contents


class TestRcConfig:
    """Loading of the .gitmodsrc file."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_rc(tmp_path)
        assert config == RcConfig()
        assert config.directory == "gitmods_modules"
        assert config.filename == "gitmods.json"
        assert config.link is False

    def test_values_are_read(self, tmp_path):
        (tmp_path / ".gitmodsrc").write_text(json.dumps({"directory": "modules", "depth": 1, "other": 1}))
        config = load_rc(tmp_path)
        assert config.directory == "modules"
        assert config.depth == 1

    def test_invalid_json_raises_config_error(self, tmp_path):
        (tmp_path / ".gitmodsrc").write_text("{")
        with pytest.raises(ConfigError):
            load_rc(tmp_path)

    def test_invalid_values_raise_config_error(self, tmp_path):
        (tmp_path / ".gitmodsrc").write_text(json.dumps({"depth": 0}))
        with pytest.raises(ConfigError):
            load_rc(tmp_path)

    def test_filename_must_be_plain(self, tmp_path):
        (tmp_path / ".gitmodsrc").write_text(json.dumps({"filename": "sub/gitmods.json"}))
        with pytest.raises(ConfigError):
            load_rc(tmp_path)
