"""Check command implementation"""

from typing import List

from ctr.models import CheckRequest, Version, decode_request


class CheckCommand:
    """Report the supplied version back to Concourse

    Versions are produced by puts only, so check never discovers new ones.
    """

    def execute(self, payload: str) -> List[Version]:
        request = decode_request(CheckRequest, payload, "check")
        if request.version is None:
            return []
        return [request.version]
