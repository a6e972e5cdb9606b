"""Extra-vars document assembly for ansible-playbook"""

import copy
import json
import logging
import posixpath
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel

from ctr.config import Environment
from ctr.engine.expressions import ExpressionEvaluator
from ctr.models import OutParams, Source

logger = logging.getLogger(__name__)


class ExtraVars:
    """Nested JSON document addressed by dotted paths

    Intermediate objects are created on demand and the last write to a path
    wins. Values are deep-copied in, so later mutation of the caller's data
    never leaks into the document.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def set_path(self, path: str, value: Any) -> None:
        """Set value at a dotted path, replacing non-object intermediates"""
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        segments = path.split(".")
        node = self._data
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = node[segment] = {}
            node = child
        node[segments[-1]] = copy.deepcopy(value)

    def to_json(self) -> str:
        return json.dumps(self._data, indent=2)

    def write(self, path: Path) -> None:
        path.write_text(self.to_json(), encoding="utf-8")


def join_path(*elements: str) -> str:
    """Join slash-separated path elements and clean the result

    Empty elements are ignored and an absolute element does not discard the
    ones before it, so ``join_path("/work", "/dir")`` is ``/work/dir``.
    """
    joined = "/".join(e for e in elements if e)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    # normpath keeps a leading "//" as POSIX allows it
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def base_extra_vars(env: Environment, source: Source, workdir: str) -> ExtraVars:
    """Variables shared by every playbook: build facts, component, storage, workdir"""
    extra_vars = ExtraVars()

    extra_vars.set_path("concourse_atc_external_url", env.atc_external_url)
    extra_vars.set_path("concourse_build_id", env.id)
    extra_vars.set_path("concourse_build_job", env.job)
    extra_vars.set_path("concourse_build_name", env.name)
    extra_vars.set_path("concourse_build_pipeline", env.pipeline)
    extra_vars.set_path("concourse_build_team", env.team)
    extra_vars.set_path("component", source.component)
    extra_vars.set_path("storage", source.storage)
    extra_vars.set_path("workdir", workdir)

    return extra_vars


def resolve_var_files(
    var_files: Optional[Iterable[str]],
    evaluator: ExpressionEvaluator,
    workdir: str
) -> list:
    """Evaluate var file paths and anchor relative ones at the working directory"""
    resolved = []
    for var_file in var_files or []:
        path = evaluator.evaluate_field(var_file)
        if not path.startswith("/"):
            path = join_path(workdir, path)
        resolved.append(path)
    return resolved


def build_out_extra_vars(
    env: Environment,
    source: Source,
    params: OutParams,
    evaluator: ExpressionEvaluator,
    workdir: str
) -> ExtraVars:
    """Assemble the put playbook variables

    Args:
        env: Build metadata
        source: Source after fallback values were assigned
        params: Put parameters
        evaluator: Evaluator bound to the input mapping context
        workdir: Absolute working directory of the invocation

    Returns:
        Populated ExtraVars document

    Raises:
        EvaluationError: If any templated field or mapping fails
    """
    extra_vars = base_extra_vars(env, source, workdir)

    context = evaluator.evaluate_field(params.context)
    extra_vars.set_path("context", context)

    workspace = evaluator.evaluate_field(params.workspace)
    extra_vars.set_path("terraform_workspace", workspace or context)

    if params.release_version:
        # TODO: release_version re-renders params.context, not its own value.
        # Switch to params.release_version once the out playbook expects it.
        extra_vars.set_path("release_version", evaluator.evaluate_field(params.context))

    if params.vars_mapping:
        tfvars = evaluator.evaluate_mapping(params.vars_mapping)
        if tfvars is not None:
            extra_vars.set_path("terraform_vars", tfvars)
        else:
            logger.debug("vars_mapping produced no output, skipping terraform_vars")

    var_files = resolve_var_files(params.var_files, evaluator, workdir)
    if var_files:
        extra_vars.set_path("terraform_var_files", var_files)

    extra_vars.set_path("terraform_path", join_path(workdir, params.dir))
    extra_vars.set_path("plan_only", params.plan_only)
    extra_vars.set_path("destroy", params.destroy)

    return extra_vars
