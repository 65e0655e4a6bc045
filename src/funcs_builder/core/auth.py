from __future__ import annotations

import structlog

from funcs_builder.core.constants import REGISTRY_SERVER_ADDRESS
from funcs_builder.core.types import AuthDescriptor, BuildRequest

logger = structlog.get_logger(__name__)


def build_auth(request: BuildRequest) -> AuthDescriptor:
    """Map the request's registry credentials onto the push ``authconfig``.

    Total over all inputs: a missing username or secret is passed through as
    ``None`` and left for the registry to reject.
    """
    logger.debug("auth_descriptor", registry=request.registry)
    return AuthDescriptor(
        username=request.username,
        password=request.secret,
        server_address=REGISTRY_SERVER_ADDRESS,
    )
