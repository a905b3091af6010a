"""Tests for output references and spec resolution."""

from __future__ import annotations

import pytest

from collectorstack.graph.models import (
    Concat,
    OutputRef,
    ResourceKind,
    ResourceNode,
    iter_refs,
    resolve_value,
)

_PREFIX = OutputRef("rule", "repository_prefix")
_ROLE = OutputRef("role", "arn")


class TestIterRefs:
    def test_finds_refs_in_nested_containers(self) -> None:
        spec = {
            "a": _ROLE,
            "b": [{"c": Concat("x/", _PREFIX)}],
            "d": ("literal", 3),
        }
        assert list(iter_refs(spec)) == [_ROLE, _PREFIX]

    def test_plain_strings_are_not_refs(self) -> None:
        assert list(iter_refs({"a": "${rule.repository_prefix}"})) == []


class TestResolveValue:
    def test_resolves_nested(self) -> None:
        lookup = {"rule": {"repository_prefix": "dockerhub"}, "role": {"arn": "arn:role"}}
        spec = {
            "principal": _ROLE,
            "resources": [Concat("repository/", _PREFIX, "/*")],
            "pair": (_PREFIX, 1),
            "count": 2,
        }
        assert resolve_value(spec, lookup) == {
            "principal": "arn:role",
            "resources": ["repository/dockerhub/*"],
            "pair": ("dockerhub", 1),
            "count": 2,
        }

    def test_missing_output_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            resolve_value({"a": _ROLE}, {"role": {}})

    def test_resolves_inside_sets(self) -> None:
        lookup = {"role": {"arn": "arn:role"}}
        resolved = resolve_value({"principals": frozenset({_ROLE, "arn:static"}), "tags": {_ROLE}}, lookup)
        assert resolved == {"principals": frozenset({"arn:role", "arn:static"}), "tags": {"arn:role"}}
        assert list(iter_refs(resolved)) == []

    def test_concat_renders_placeholders(self) -> None:
        assert str(Concat("repository/", _PREFIX, "/*")) == "repository/${rule.repository_prefix}/*"


class TestResourceNode:
    def test_explicit_outputs_override_defaults(self) -> None:
        node = ResourceNode("custom", ResourceKind.FUNCTION, declared_outputs=("function_arn", "url"))
        assert node.ref("url") == OutputRef("custom", "url")

    def test_depends_on_normalised_to_frozenset(self) -> None:
        node = ResourceNode("svc", ResourceKind.COMPUTE_SERVICE, depends_on={"a", "b"})  # type: ignore[arg-type]
        assert node.depends_on == frozenset({"a", "b"})
