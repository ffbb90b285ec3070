"""Tests for catalog models and config parsing."""

import pytest
from pydantic import ValidationError

from playdeck.catalog.models import CatalogConfig, Parameter, ParameterType


class TestParameter:
    def test_select_requires_options(self):
        with pytest.raises(ValidationError):
            Parameter(name="x", type=ParameterType.SELECT)
        with pytest.raises(ValidationError):
            Parameter(name="x", type=ParameterType.SELECT, options=[])

    def test_options_only_for_select(self):
        with pytest.raises(ValidationError):
            Parameter(name="x", type=ParameterType.TEXT, options=["a"])

    def test_name_required(self):
        with pytest.raises(ValidationError):
            Parameter(name="")


class TestDefinitionLookup:
    def test_parameter_lookup(self, make_definition):
        definition = make_definition(parameters=[Parameter(name="a"), Parameter(name="b")])
        assert definition.parameter("b").name == "b"
        assert definition.parameter("c") is None


class TestCatalogConfig:
    def test_defaults(self):
        config = CatalogConfig()
        assert config.source == ""
        assert config.namespace == "local"
        assert config.collection_name == ""
        assert config.use_local is False
        assert config.execution_sandbox_image is None

    def test_camel_case_keys(self):
        config = CatalogConfig.model_validate(
            {
                "source": "acme.demos",
                "namespace": "acme",
                "collectionName": "demos",
                "useLocal": True,
                "executionSandboxImage": "ee:1",
            }
        )
        assert config.collection_name == "demos"
        assert config.use_local is True
        assert config.execution_sandbox_image == "ee:1"

    def test_legacy_keys(self):
        config = CatalogConfig.model_validate(
            {"repoUrl": "https://x/y.git", "executionEnvironment": "ee:2"}
        )
        assert config.source == "https://x/y.git"
        assert config.execution_sandbox_image == "ee:2"

    def test_dump_by_alias(self):
        dumped = CatalogConfig(collection_name="demos").model_dump(by_alias=True)
        assert dumped["collectionName"] == "demos"
