"""ansible-playbook invocation"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, TextIO

from ctr.engine.extra_vars import ExtraVars
from ctr.exceptions import ExternalProcessError
from ctr.models import Source
from ctr.utils.context_managers import SecureTempFile

logger = logging.getLogger(__name__)

OUTPUT_FLAGS = {
    "ANSIBLE_FORCE_COLOR": "True",
    "ANSIBLE_STDOUT_CALLBACK": "debug",
    "ANSIBLE_DISPLAY_SKIPPED_HOSTS": "False",
    "ANSIBLE_COLOR_OK": "white",
}


def vault_envs(source: Source) -> Dict[str, str]:
    """hashi_vault lookup settings for AppRole auth"""
    return {
        "ANSIBLE_HASHI_VAULT_ADDR": source.vault.addr,
        "ANSIBLE_HASHI_VAULT_AUTH_METHOD": "approle",
        "ANSIBLE_HASHI_VAULT_ROLE_ID": source.vault.role_id,
        "ANSIBLE_HASHI_VAULT_SECRET_ID": source.vault.secret_id,
    }


class AnsiblePlaybook:
    """One ansible-playbook invocation and the state it needs

    The extra-vars document is written to a private temporary file only for
    the duration of ``run`` and referenced with ``-e @file``.
    """

    def __init__(
        self,
        source: Source,
        playbook: Path,
        workdir: str,
        extra_vars: ExtraVars,
        ansible_bin: str = "ansible-playbook",
        output: Optional[TextIO] = None
    ):
        """Initialize playbook command

        Args:
            source: Validated source (vault credentials are exported)
            playbook: Entrypoint playbook for the operation
            workdir: Working directory the playbook runs in
            extra_vars: Variables handed to the playbook
            ansible_bin: Executable to run
            output: Stream receiving the playbook's stdout (None inherits ours)
        """
        self.playbook = playbook
        self.workdir = workdir
        self.extra_vars = extra_vars
        self.ansible_bin = ansible_bin
        self.output = output
        self.args: List[str] = []
        self.envs: Dict[str, str] = {**OUTPUT_FLAGS, **vault_envs(source)}

    def add_envs(self, envs: Mapping[str, str]) -> None:
        """Merge user environment variables (they win over the fixed flags)"""
        self.envs.update(envs)

    def build_argv(self, vars_file: Path) -> List[str]:
        return [self.ansible_bin, *self.args, "-e", f"@{vars_file}", str(self.playbook)]

    def build_env(self) -> Dict[str, str]:
        # os.environ is read here so SSH_AUTH_SOCK exported by the agent is inherited
        return {**os.environ, **self.envs}

    def run(self, timeout: Optional[float] = None) -> None:
        """Write the vars file, run the playbook, and remove the file

        Args:
            timeout: Seconds to wait before killing the playbook (None = no limit)

        Raises:
            ExternalProcessError: On spawn failure, timeout, or non-zero exit
        """
        with SecureTempFile(prefix="ctr-vars-") as vars_file:
            self.extra_vars.write(vars_file)
            argv = self.build_argv(vars_file)
            logger.info("Running %s %s", self.ansible_bin, self.playbook)

            try:
                result = subprocess.run(
                    argv,
                    cwd=self.workdir,
                    env=self.build_env(),
                    stdout=self.output,
                    timeout=timeout,
                )
            except subprocess.TimeoutExpired as exc:
                raise ExternalProcessError(
                    self.ansible_bin, reason=f"timed out after {timeout} seconds"
                ) from exc
            except OSError as exc:
                raise ExternalProcessError(self.ansible_bin, reason=str(exc)) from exc

            if result.returncode != 0:
                raise ExternalProcessError(self.ansible_bin, exit_code=result.returncode)
