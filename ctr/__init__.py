"""Concourse resource that runs terraform through ansible-playbook."""

__version__ = "0.1.0"
