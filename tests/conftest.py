"""Shared fixtures for resource tests"""

import subprocess
from typing import Any, Dict, List

import pytest

from ctr.config import Environment, RuntimeConfig
from ctr.models import Source


BUILD_ENVIRON = {
    "BUILD_ID": "2199",
    "BUILD_NAME": "217",
    "BUILD_JOB_NAME": "testing",
    "BUILD_PIPELINE_NAME": "example-component",
    "BUILD_TEAM_NAME": "sre",
    "ATC_EXTERNAL_URL": "http://127.0.0.1:8080",
}


@pytest.fixture
def build_environ() -> Dict[str, str]:
    return dict(BUILD_ENVIRON)


@pytest.fixture
def environment() -> Environment:
    return Environment.from_environ(BUILD_ENVIRON)


@pytest.fixture
def source_data() -> Dict[str, Any]:
    """Minimal valid source section"""
    return {
        "storage": {
            "aws_access_key_id": "foo",
            "aws_secret_access_key": "bar",
            "bucket": "foo",
            "region": "us-east-1",
        },
        "vault": {
            "addr": "https://vault.com",
            "role_id": "vault-role-id",
            "secret_id": "vault-secret-id",
        },
    }


@pytest.fixture
def source(source_data) -> Source:
    return Source.model_validate(source_data)


@pytest.fixture
def runtime_config(tmp_path) -> RuntimeConfig:
    return RuntimeConfig(
        playbook_dir=tmp_path / "ansible",
        known_hosts_file=tmp_path / "ssh" / "known_hosts",
    )


class FakeRun:
    """Stand-in for subprocess.run that records calls

    ``on_call`` may inspect the call while it is "running", e.g. to check
    the vars file exists at that moment.
    """

    def __init__(self, returncode: int = 0, on_call=None, raises: Exception = None):
        self.returncode = returncode
        self.on_call = on_call
        self.raises = raises
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, args, **kwargs):
        self.calls.append({"args": list(args), **kwargs})
        if self.on_call:
            self.on_call(list(args), kwargs)
        if self.raises:
            raise self.raises
        return subprocess.CompletedProcess(args, self.returncode, stdout="", stderr="")


@pytest.fixture
def fake_run():
    return FakeRun
