"""SSH agent staging for playbook sub-processes

Terraform modules are often fetched over git+ssh from inside the playbook.
When a private key is configured, a dedicated ssh-agent is spawned, the key
is loaded into it, ``SSH_AUTH_SOCK`` is exported so every child process
inherits it, and the git host's key is added to known_hosts.
"""

import logging
import os
import re
import signal
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from ctr.exceptions import CredentialError

logger = logging.getLogger(__name__)

AUTH_SOCK_RE = re.compile(r"SSH_AUTH_SOCK=([^;\s]+)")
AGENT_PID_RE = re.compile(r"SSH_AGENT_PID=(\d+)")


def _run(args: Sequence[str], *, input: Optional[str] = None, env=None) -> str:
    """Run an ssh helper and return stdout, raising CredentialError on failure."""
    try:
        result = subprocess.run(
            list(args),
            input=input,
            env=env,
            check=True,
            text=True,
            capture_output=True,
        )
    except FileNotFoundError as exc:
        raise CredentialError(
            f"{args[0]} not found",
            help_text="Install openssh-client in the resource image",
        ) from exc
    except subprocess.CalledProcessError as exc:
        details = (exc.stderr or "").strip() or (exc.stdout or "").strip() or str(exc)
        raise CredentialError(f"{args[0]} failed: {details}") from exc
    return result.stdout


class SSHAgent:
    """A private ssh-agent process, killed when the context exits"""

    def __init__(self):
        self.auth_sock: Optional[str] = None
        self.pid: Optional[int] = None
        self._previous_auth_sock: Optional[str] = None
        self._exported = False

    def __enter__(self) -> "SSHAgent":
        try:
            self.spawn()
        except CredentialError:
            self.shutdown()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    def spawn(self) -> None:
        """Start ssh-agent and record its socket and pid

        Raises:
            CredentialError: If the agent cannot be started
        """
        output = _run(["ssh-agent", "-s"])
        sock = AUTH_SOCK_RE.search(output)
        pid = AGENT_PID_RE.search(output)
        if pid:
            self.pid = int(pid.group(1))
        if not sock or not pid:
            raise CredentialError(f"unexpected ssh-agent output: {output.strip()}")
        self.auth_sock = sock.group(1)
        logger.debug("Spawned ssh-agent (pid %s)", self.pid)

    def add_key(self, key: str) -> None:
        """Load private key material into the agent

        Raises:
            CredentialError: If ssh-add rejects the key
        """
        if not key.endswith("\n"):
            key += "\n"
        env = {**os.environ, "SSH_AUTH_SOCK": self.auth_sock}
        _run(["ssh-add", "-"], input=key, env=env)

    def export(self) -> None:
        """Point SSH_AUTH_SOCK at this agent for the rest of the process"""
        self._previous_auth_sock = os.environ.get("SSH_AUTH_SOCK")
        os.environ["SSH_AUTH_SOCK"] = self.auth_sock
        self._exported = True

    def prime_known_hosts(self, host: str, known_hosts_file: Path) -> None:
        """Append the hashed host key of a git host to known_hosts

        Raises:
            CredentialError: If the host key cannot be scanned or written
        """
        keys = _run(["ssh-keyscan", "-H", host])
        if not keys.strip():
            raise CredentialError(f"ssh-keyscan returned no keys for {host}")

        known_hosts = known_hosts_file.expanduser()
        try:
            known_hosts.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            with open(known_hosts, "a", encoding="utf-8") as handle:
                handle.write(keys if keys.endswith("\n") else keys + "\n")
        except OSError as exc:
            raise CredentialError(f"failed to write {known_hosts}: {exc}") from exc
        logger.debug("Added %s to %s", host, known_hosts)

    def shutdown(self) -> None:
        """Kill the agent and restore SSH_AUTH_SOCK (idempotent)"""
        if self._exported:
            if self._previous_auth_sock is None:
                os.environ.pop("SSH_AUTH_SOCK", None)
            else:
                os.environ["SSH_AUTH_SOCK"] = self._previous_auth_sock
            self._exported = False

        if self.pid is not None:
            try:
                os.kill(self.pid, signal.SIGTERM)
            except ProcessLookupError:
                logger.debug("ssh-agent %s already exited", self.pid)
            self.pid = None


@contextmanager
def ssh_identity(key: str, known_host: str, known_hosts_file: Path) -> Iterator[SSHAgent]:
    """Stage a private key for the duration of the block

    Args:
        key: Private key material
        known_host: Git host whose key is trusted
        known_hosts_file: known_hosts file to append to

    Raises:
        CredentialError: If any staging step fails (the agent is still killed)
    """
    with SSHAgent() as agent:
        agent.add_key(key)
        agent.export()
        agent.prime_known_hosts(known_host, known_hosts_file)
        logger.info("Staged SSH identity for %s", known_host)
        yield agent
