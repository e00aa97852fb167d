"""Manifest model: a module's name, version, dependencies and tag provenance."""
import json
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gitmods.core.errors import ManifestError
from gitmods.core.reference import RepositoryReference, Target, parse_reference


class TagProvenance(BaseModel):
    """Stamped into a manifest by the release planner when it cuts a tag.

    Records where the tag came from so a later run can recognise that
    nothing has changed since:
    - commit: last commit of the original branch when the tag was cut
    - branch: original branch name
    - target: original target as a {branch|tag|commit} object
    """

    commit: str = Field(..., description="Commit SHA the tag was cut from")
    branch: Optional[str] = Field(default=None, description="Original branch")
    target: Optional[Dict[str, str]] = Field(default=None, description="Original target")

    def matches(self, target: Target, last_commit: str) -> bool:
        """True when this provenance describes `target` sat on `last_commit`."""
        if self.commit != last_commit:
            return False
        if self.branch:
            return self.branch == target.branch
        if self.target:
            recorded = Target.from_dict(self.target)
            return recorded is not None and recorded == target
        return False


class Manifest(BaseModel):
    """Per-module dependency declaration (the `gitmods.json` file).

    Unknown keys are kept so rewriting a manifest never drops user data.
    """

    name: Optional[str] = Field(default=None, description="Module name")
    version: Optional[str] = Field(default=None, description="Semantic version")
    dependencies: Dict[str, str] = Field(
        default_factory=dict,
        description="Dependency name -> '<url>[#target]'",
    )
    tag: Optional[TagProvenance] = Field(default=None, description="Tag provenance")

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "name": "main",
                "version": "0.1.0-snapshot.0",
                "dependencies": {
                    "dep1": "https://example.com/dep1.git#master",
                    "dep2": "https://example.com/dep2.git#1.0.0",
                },
            }
        },
    )

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Ensure every dependency has a name and a non-empty URL."""
        for name, value in v.items():
            if not name.strip():
                raise ValueError("dependency names must not be empty")
            if not isinstance(value, str) or not parse_reference(value).url:
                raise ValueError(f"dependency '{name}' has no repository URL: {value!r}")
        return v

    def references(self) -> Dict[str, RepositoryReference]:
        """Parsed dependency references, in declaration order."""
        return {name: parse_reference(value) for name, value in self.dependencies.items()}

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True) + "\n"

    def save(self, path: Path) -> None:
        """Write manifest to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")

    @classmethod
    def from_json(cls, text: str, source: str = "<string>") -> "Manifest":
        """Parse manifest JSON.

        Raises:
            ManifestError: If the text is not a valid manifest
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Invalid JSON in {source}: {e}")
        if not isinstance(data, dict):
            raise ManifestError(f"Manifest {source} must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest {source}: {e}")

    @classmethod
    def load(cls, path: Path) -> "Manifest":
        """Load manifest from JSON file."""
        path = Path(path)
        return cls.from_json(path.read_text(encoding="utf-8"), source=str(path))


def write_version_to_json_file(path: Path, version: str) -> bool:
    """Mirror a version into an adjacent metadata file such as package.json.

    Returns True when the file existed and was rewritten.

    Raises:
        ManifestError: If the file is not a JSON object
    """
    path = Path(path)
    if not path.exists():
        return False
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in {path}: {e}")
    if not isinstance(data, dict):
        raise ManifestError(f"{path} must be a JSON object")
    data["version"] = version
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return True
