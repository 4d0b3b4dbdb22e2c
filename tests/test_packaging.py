"""
Tests for the project metadata in pyproject.toml.
"""

from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


@pytest.fixture
def project():
    with open(PYPROJECT, "rb") as f:
        return tomllib.load(f)["project"]


class TestProjectMetadata:
    """[project] table"""

    def test_readme_is_not_a_requirements_document(self, project):
        assert "readme" not in project

    def test_runtime_dependencies(self, project):
        names = {dep.split(">")[0].split("=")[0] for dep in project["dependencies"]}

        assert names == {"pydantic", "pydantic-settings", "sqlalchemy", "python-dotenv"}
