"""Unit tests for the extra-vars document builder"""

import json

import pytest

from ctr.engine.expressions import ExpressionEvaluator
from ctr.engine.extra_vars import (
    ExtraVars,
    base_extra_vars,
    build_out_extra_vars,
    join_path,
    resolve_var_files
)
from ctr.models import OutParams

WORKDIR = "/tmp/build/put"


def as_dict(doc):
    return json.loads(doc.to_json())


def build(environment, source, evaluator=None, **params):
    params.setdefault("context", "foo")
    params.setdefault("dir", "source/terraform")
    source.assign_fallback_values(environment.team, environment.pipeline)
    return as_dict(build_out_extra_vars(
        environment,
        source,
        OutParams(**params),
        evaluator or ExpressionEvaluator(),
        WORKDIR,
    ))


class TestExtraVars:
    """Dotted-path document"""

    def test_set_nested(self):
        doc = ExtraVars()
        doc.set_path("a.b.c", 1)

        assert as_dict(doc) == {"a": {"b": {"c": 1}}}

    def test_last_write_wins(self):
        doc = ExtraVars()
        doc.set_path("a", "first")
        doc.set_path("a", "second")

        assert as_dict(doc)["a"] == "second"

    def test_scalar_intermediate_is_replaced(self):
        doc = ExtraVars()
        doc.set_path("a", "scalar")
        doc.set_path("a.b", True)

        assert as_dict(doc) == {"a": {"b": True}}

    def test_values_are_copied(self):
        value = {"x": [1]}
        doc = ExtraVars()
        doc.set_path("v", value)
        value["x"].append(2)

        assert as_dict(doc)["v"] == {"x": [1]}

    def test_pydantic_models_are_dumped(self, source):
        doc = ExtraVars()
        doc.set_path("storage", source.storage)

        assert as_dict(doc)["storage"]["bucket"] == "foo"

    def test_null_values_are_kept(self):
        doc = ExtraVars()
        doc.set_path("a", None)

        assert as_dict(doc) == {"a": None}

    def test_write(self, tmp_path):
        doc = ExtraVars()
        doc.set_path("a.b", [1, 2])
        target = tmp_path / "vars.json"
        doc.write(target)

        assert json.loads(target.read_text()) == {"a": {"b": [1, 2]}}


@pytest.mark.parametrize("elements,expected", [
    (("/tmp/build/put", "source/terraform"), "/tmp/build/put/source/terraform"),
    (("/tmp/build/put", "a/b/../c"), "/tmp/build/put/a/c"),
    (("/tmp/build/put", ""), "/tmp/build/put"),
    (("/tmp/build/put", "/abs"), "/tmp/build/put/abs"),
    (("/tmp/build/put/", "./tf/"), "/tmp/build/put/tf"),
    (("/", "tf"), "/tf"),
    (("", ""), ""),
])
def test_join_path(elements, expected):
    assert join_path(*elements) == expected


class TestBaseExtraVars:

    def test_build_facts(self, environment, source):
        doc = as_dict(base_extra_vars(environment, source, WORKDIR))

        assert doc["concourse_atc_external_url"] == "http://127.0.0.1:8080"
        assert doc["concourse_build_id"] == "2199"
        assert doc["concourse_build_job"] == "testing"
        assert doc["concourse_build_name"] == "217"
        assert doc["concourse_build_pipeline"] == "example-component"
        assert doc["concourse_build_team"] == "sre"
        assert doc["workdir"] == WORKDIR
        assert doc["storage"]["aws_secret_access_key"] == "bar"


class TestBuildOutExtraVars:
    """Put playbook variables"""

    def test_basic(self, environment, source):
        doc = build(environment, source)

        assert doc["component"] == "example-component"
        assert doc["storage"]["key"] == "sre/example-component/concourse-terraform-resource/version.tgz"
        assert doc["context"] == "foo"
        assert doc["terraform_workspace"] == "foo"
        assert doc["terraform_path"] == "/tmp/build/put/source/terraform"
        assert doc["plan_only"] is False
        assert doc["destroy"] is False
        assert "release_version" not in doc
        assert "terraform_vars" not in doc
        assert "terraform_var_files" not in doc

    @pytest.mark.parametrize("workspace,expected", [
        ("", "foo"),
        ("ws", "ws"),
    ])
    def test_workspace_falls_back_to_context(self, environment, source, workspace, expected):
        doc = build(environment, source, workspace=workspace)

        assert doc["terraform_workspace"] == expected

    def test_workspace_rendering_empty_falls_back(self, environment, source):
        evaluator = ExpressionEvaluator({"ws": ""})
        doc = build(environment, source, evaluator, workspace="${! ws }")

        assert doc["terraform_workspace"] == "foo"

    def test_templated_context_and_workspace(self, environment, source):
        evaluator = ExpressionEvaluator({"context": "qa1-use2", "workspace": "qa1-use2-monitoring"})
        doc = build(
            environment, source, evaluator,
            context='${!json("context")}',
            workspace='${!json("workspace")}',
        )

        assert doc["context"] == "qa1-use2"
        assert doc["terraform_workspace"] == "qa1-use2-monitoring"

    def test_release_version_re_renders_context(self, environment, source):
        evaluator = ExpressionEvaluator({"ctx": "qa1"})
        doc = build(
            environment, source, evaluator,
            context="${! ctx }", release_version="v1.0.0",
        )

        assert doc["release_version"] == "qa1"

    def test_vars_mapping(self, environment, source):
        evaluator = ExpressionEvaluator({"vars": {"region": "us-east-2", "list": [1, 2, 3]}})
        doc = build(
            environment, source, evaluator,
            vars_mapping='root = vars\nfoo = "bar"\ntest_bool = true',
        )

        assert doc["terraform_vars"] == {
            "region": "us-east-2",
            "list": [1, 2, 3],
            "foo": "bar",
            "test_bool": True,
        }

    def test_vars_mapping_only_bool(self, environment, source):
        doc = build(environment, source, vars_mapping="test_bool = true")

        assert doc["terraform_vars"] == {"test_bool": True}

    def test_vars_mapping_without_output(self, environment, source):
        doc = build(environment, source, vars_mapping="# nothing")

        assert "terraform_vars" not in doc

    def test_var_files(self, environment, source):
        evaluator = ExpressionEvaluator({"env": "qa"})
        doc = build(
            environment, source, evaluator,
            var_files=["vars/${! this.env }.tfvars", "/etc/common.tfvars"],
        )

        assert doc["terraform_var_files"] == [
            "/tmp/build/put/vars/qa.tfvars",
            "/etc/common.tfvars",
        ]

    def test_flags(self, environment, source):
        doc = build(environment, source, plan_only=True, destroy=True)

        assert doc["plan_only"] is True
        assert doc["destroy"] is True

    @pytest.mark.parametrize("directory,expected", [
        ("source/terraform", "/tmp/build/put/source/terraform"),
        ("source/terraform/modules/network", "/tmp/build/put/source/terraform/modules/network"),
        ("", "/tmp/build/put"),
    ])
    def test_terraform_path(self, environment, source, directory, expected):
        doc = build(environment, source, dir=directory)

        assert doc["terraform_path"] == expected


def test_resolve_var_files_empty():
    assert resolve_var_files(None, ExpressionEvaluator(), WORKDIR) == []
