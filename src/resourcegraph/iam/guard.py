"""
Scope guard - checks a principal against the scope an operation requires.

Scopes are declared per operation kind on the capability descriptor.
The wildcard scope "*" grants every operation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..core.defs import CapabilityDescriptor
from ..core.errors import IAMError

if TYPE_CHECKING:
    from ..runtime.context import Principal

logger = logging.getLogger(__name__)


def check_scope(
    principal: Optional[Principal],
    descriptor: CapabilityDescriptor,
    operation: str,
    enforce: bool = True,
) -> None:
    """
    Ensure the principal may perform an operation on a resource.

    Args:
        principal: Caller, None when no credentials were resolved
        descriptor: Capability descriptor of the target resource
        operation: Operation kind (list, read, create, update, delete)
        enforce: False disables the check entirely

    Raises:
        IAMError: 401 without a principal, 403 when the scope is missing
    """
    if not enforce:
        return

    required = descriptor.scope_for(operation)
    if required is None:
        return

    if principal is None:
        raise IAMError("Unauthorized", status_code=401)

    if not principal.has_scope(required):
        logger.debug(
            f"Principal {principal.id} lacks scope '{required}' "
            f"for {operation} on {descriptor.resource_name}"
        )
        raise IAMError("Insufficient scope", status_code=403)
