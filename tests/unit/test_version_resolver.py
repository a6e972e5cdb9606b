"""Unit tests for version resolution"""

import re
from datetime import datetime, timezone

from ctr.engine.version import fallback_version_id, read_version_id, resolve_version

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{6}Z$")


def test_reads_version_artifact(tmp_path):
    (tmp_path / "version_id").write_text("iQTUjehl1EsngSfrax_L.4wL4qcsHTYx\n")

    version = resolve_version(str(tmp_path), "sre/component/version.tgz")

    assert version.key == "sre/component/version.tgz"
    assert version.version_id == "iQTUjehl1EsngSfrax_L.4wL4qcsHTYx"


def test_missing_artifact_falls_back_to_timestamp(tmp_path):
    version = resolve_version(str(tmp_path), "key")

    assert version.version_id
    assert TIMESTAMP_RE.match(version.version_id)


def test_empty_artifact_falls_back_to_timestamp(tmp_path):
    (tmp_path / "version_id").write_text("  \n")

    assert TIMESTAMP_RE.match(resolve_version(str(tmp_path), "key").version_id)


def test_unreadable_artifact(tmp_path):
    (tmp_path / "version_id").mkdir()

    assert read_version_id(tmp_path / "version_id") is None


def test_custom_version_file(tmp_path):
    (tmp_path / "out").mkdir()
    (tmp_path / "out" / "id").write_text("abc")

    assert resolve_version(str(tmp_path), "key", "out/id").version_id == "abc"


def test_fallback_format_is_sortable():
    earlier = fallback_version_id(datetime(2024, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc))
    later = fallback_version_id(datetime(2024, 1, 2, 3, 4, 5, 7, tzinfo=timezone.utc))

    assert earlier == "2024-01-02T03:04:05.000006Z"
    assert earlier < later
