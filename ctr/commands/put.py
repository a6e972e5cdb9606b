"""Out (put) command implementation"""

import logging
import os
from contextlib import ExitStack
from typing import Optional, TextIO, Tuple

from ctr.config import Environment, RuntimeConfig
from ctr.engine.ansible import AnsiblePlaybook
from ctr.engine.expressions import ExpressionEvaluator
from ctr.engine.extra_vars import build_out_extra_vars
from ctr.engine.ssh import ssh_identity
from ctr.engine.version import resolve_version
from ctr.models import OutRequest, OutResponse, decode_request

logger = logging.getLogger(__name__)


class PutCommand:
    """Run the out playbook for a put and report the produced version"""

    def __init__(
        self,
        workdir: str,
        env: Environment,
        config: Optional[RuntimeConfig] = None,
        output: Optional[TextIO] = None
    ):
        """Initialize put command

        Args:
            workdir: Build directory Concourse passed as the first argument
            env: Build metadata
            config: Runtime configuration (defaults apply when omitted)
            output: Stream for playbook output (None inherits stdout)
        """
        self.workdir = os.path.abspath(workdir)
        self.env = env
        self.config = config or RuntimeConfig()
        self.output = output

    def execute(self, payload: str) -> OutResponse:
        """Decode the request, run the playbook, and resolve the version

        Raises:
            RequestDecodeError: Malformed or unknown request fields
            RequestValidationError: Missing required configuration
            EvaluationError: Invalid field or mapping
            CredentialError: SSH key could not be staged
            ExternalProcessError: Playbook failed to start or exited non-zero
        """
        request = decode_request(OutRequest, payload, "out")
        playbook, evaluator = self.prepare(request)

        with ExitStack() as stack:
            key = request.private_key()
            if key:
                stack.enter_context(ssh_identity(
                    evaluator.evaluate_field(key),
                    self.config.known_host,
                    self.config.known_hosts_file,
                ))
            playbook.run(timeout=self.config.playbook_timeout)

        version = resolve_version(
            self.workdir, request.source.storage.key, self.config.version_file
        )
        return OutResponse(version=version, metadata=[])

    def prepare(self, request: OutRequest) -> Tuple[AnsiblePlaybook, ExpressionEvaluator]:
        """Validate the request and build the playbook command

        Returns:
            The playbook and the evaluator bound to this request's input context

        Raises:
            RequestValidationError: Missing required configuration
            EvaluationError: Invalid field or mapping
        """
        request.validate_config()
        request.source.assign_fallback_values(self.env.team, self.env.pipeline)

        # the input mapping result is the context for every later evaluation
        evaluator = ExpressionEvaluator()
        if request.params.input_mapping:
            context = evaluator.evaluate_mapping(request.params.input_mapping)
            evaluator = evaluator.with_context({} if context is None else context)

        extra_vars = build_out_extra_vars(
            self.env, request.source, request.params, evaluator, self.workdir
        )

        playbook = AnsiblePlaybook(
            request.source,
            self.config.playbook("out"),
            self.workdir,
            extra_vars,
            ansible_bin=self.config.ansible_bin,
            output=self.output,
        )
        playbook.add_envs({
            name: evaluator.evaluate_field(value)
            for name, value in request.merged_envs().items()
        })
        return playbook, evaluator
