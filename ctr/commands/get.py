"""In (get) command implementation"""

import logging

from ctr.config import Environment
from ctr.models import InRequest, InResponse, decode_request

logger = logging.getLogger(__name__)


class GetCommand:
    """Echo the requested version; state lives in remote storage, not the volume"""

    def __init__(self, workdir: str, env: Environment):
        self.workdir = workdir
        self.env = env

    def execute(self, payload: str) -> InResponse:
        request = decode_request(InRequest, payload, "in")
        request.validate_config()
        logger.debug("Fetched version %s into %s", request.version.version_id, self.workdir)
        return InResponse(version=request.version, metadata=[])
