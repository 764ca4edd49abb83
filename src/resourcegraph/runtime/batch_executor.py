"""
Batch executor for resourcegraph.

Runs an ordered list of sub-operations through the same dispatcher a
standalone request uses, optionally inside one store transaction.

Handles:
- Strictly sequential execution in sequence order
- Atomic mode: first failure stops the batch and rolls everything back
- Non-atomic mode: every operation commits (or rolls back) on its own
- Cache invalidation for every successful mutating sub-operation
- A time budget for the whole batch
"""

from __future__ import annotations


import asyncio
import logging
from typing import Any, AsyncContextManager, Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..cache.response_cache import ResponseCache
from ..core.errors import StoreFault, TransactionAborted, ValidationError
from ..core.query_types import BatchOperation, BatchOperationDescriptor, BatchOutcome, BatchResult
from ..core.registry import ResourceRegistry
from .context import InternalRequest, Principal
from .dispatcher import RequestDispatcher
from .store import ResourceStore

logger = logging.getLogger(__name__)


FAILED_ERROR = "Batch operation failed"
TIMEOUT_ERROR = "Batch operation timed out"
ROLLED_BACK_MESSAGE = "One or more operations failed, all changes have been rolled back"
UNEXPECTED_MESSAGE = "An unexpected error occurred"

# Methods whose success invalidates a single item
ITEM_MUTATIONS = {"PUT", "PATCH", "DELETE"}


class BatchExecutor:
    """
    Executes batches of sub-operations.

    Example batch:
    {
        "operations": [
            {"method": "POST", "path": "/api/products", "body": {"name": "A", "price": 5}},
            {"method": "PATCH", "path": "/api/products/3", "body": {"price": 7}},
            {"method": "GET", "path": "/api/products?filter[price]=7"}
        ],
        "use_transaction": true
    }
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        session_factory: Callable[[], AsyncContextManager[AsyncSession]],
        registry: ResourceRegistry,
        cache: ResponseCache,
        default_timeout: Optional[float] = None,
        max_operations: Optional[int] = None,
        debug: bool = False,
    ):
        """
        Initialize batch executor.

        Args:
            dispatcher: Dispatcher shared with the HTTP routes
            session_factory: Opens one AsyncSession per batch
            registry: Resource registry for the stores it creates
            cache: Response cache to invalidate after writes
            default_timeout: Time budget in seconds when execute() gets none
            max_operations: Largest accepted batch
            debug: Report the text of unexpected faults to the caller
        """
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.registry = registry
        self.cache = cache
        self.default_timeout = default_timeout
        self.max_operations = max_operations
        self.debug = debug

    async def execute(
        self,
        operations: Sequence[BatchOperation | BatchOperationDescriptor],
        atomic: bool = False,
        principal: Optional[Principal] = None,
        timeout: Optional[float] = None,
    ) -> BatchOutcome:
        """
        Execute a batch.

        Args:
            operations: Sub-operations in execution order
            atomic: Run all operations in one transaction
            principal: Caller; every sub-operation is checked against its scopes
            timeout: Time budget in seconds (falls back to default_timeout)

        Returns:
            BatchOutcome with one BatchResult per executed operation

        Raises:
            ValidationError: more operations than max_operations
        """
        descriptors = self._descriptors(operations)
        if self.max_operations is not None and len(descriptors) > self.max_operations:
            raise ValidationError(
                {"operations": [f"The operations field must not have more than {self.max_operations} items."]}
            )

        timeout = timeout if timeout is not None else self.default_timeout
        results: list[BatchResult] = []
        invalidations: list[tuple[str, Optional[str]]] = []

        logger.info(f"Executing batch of {len(descriptors)} operations (atomic={atomic})")

        async with self.session_factory() as session:
            store = ResourceStore(session, self.registry, autocommit=not atomic)

            try:
                await asyncio.wait_for(
                    self._run(descriptors, atomic, principal, store, results, invalidations),
                    timeout=timeout,
                )
                if atomic:
                    await store.commit()

            except asyncio.TimeoutError:
                logger.warning(
                    f"Batch timed out after {timeout}s, "
                    f"{len(results)} of {len(descriptors)} operations completed"
                )
                await store.rollback()
                return BatchOutcome(
                    results=results,
                    success=False,
                    rolled_back=atomic,
                    error=TIMEOUT_ERROR,
                    message=f"Batch exceeded {timeout}s; {len(results)} of {len(descriptors)} operations completed",
                    status_code=500,
                )

            except TransactionAborted as e:
                await store.rollback()
                logger.info(f"Atomic batch rolled back at operation {e.failed_index}")
                return BatchOutcome(
                    results=results,
                    success=False,
                    rolled_back=True,
                    error=FAILED_ERROR,
                    message=str(e),
                    status_code=500 if e.failed_index is None else 422,
                )

            except StoreFault as e:
                # Only the final commit of an atomic batch gets here
                logger.error(f"Atomic batch commit failed: {e}")
                await store.rollback()
                return BatchOutcome(
                    results=results,
                    success=False,
                    rolled_back=True,
                    error=FAILED_ERROR,
                    message=self._fault_message(e),
                    status_code=500,
                )

        if atomic:
            # Writes are visible to other readers only now
            for resource, identifier in invalidations:
                await self._invalidate(resource, identifier)

        return BatchOutcome(
            results=results,
            success=all(r.status_code < 400 for r in results),
        )

    async def _run(
        self,
        descriptors: list[BatchOperationDescriptor],
        atomic: bool,
        principal: Optional[Principal],
        store: ResourceStore,
        results: list[BatchResult],
        invalidations: list[tuple[str, Optional[str]]],
    ) -> None:
        """Run operations in order, appending results as they complete."""
        for op in descriptors:
            request = self._to_request(op, principal)

            try:
                result = await self.dispatcher.dispatch(
                    request,
                    store,
                    use_cache=not atomic,
                    invalidate=False,
                )
            except Exception as e:
                logger.exception(f"Batch operation {op.sequence_index} ({op.method} {op.path}) failed")
                if atomic:
                    # failed_index None marks an unexpected fault
                    raise TransactionAborted(self._fault_message(e)) from e
                await store.rollback()
                results.append(BatchResult(
                    id=op.sequence_index,
                    status_code=500,
                    body={"error": "Internal server error", "message": self._fault_message(e)},
                ))
                continue

            results.append(BatchResult(id=op.sequence_index, status_code=result.status_code, body=result.body))

            if not result.ok:
                if atomic:
                    raise TransactionAborted(ROLLED_BACK_MESSAGE, failed_index=op.sequence_index)
                await store.rollback()
                continue

            if op.method != "GET":
                target = self._invalidation_target(op)
                if target is not None:
                    invalidations.append(target)
                    await self._invalidate(*target)

    def _fault_message(self, error: Exception) -> str:
        return str(error) if self.debug else UNEXPECTED_MESSAGE

    def _invalidation_target(self, op: BatchOperationDescriptor) -> Optional[tuple[str, Optional[str]]]:
        """(resource, identifier) a successful mutating operation affects."""
        route = self.dispatcher.resolve(op.path)
        if route.resource is None:
            return None
        if op.method in ITEM_MUTATIONS and route.identifier:
            return route.resource, route.identifier
        return route.resource, None

    async def _invalidate(self, resource: str, identifier: Optional[str]) -> None:
        if identifier is not None:
            await self.cache.flush(resource, identifier)
        else:
            await self.cache.flush_collection(resource)

    def _to_request(self, op: BatchOperationDescriptor, principal: Optional[Principal]) -> InternalRequest:
        headers = dict(op.headers)
        if principal is not None and principal.bearer_token and "Authorization" not in headers:
            headers["Authorization"] = f"Bearer {principal.bearer_token}"
        return InternalRequest(
            method=op.method,
            path=op.path,
            body=dict(op.body),
            headers=headers,
            principal=principal,
        )

    @staticmethod
    def _descriptors(operations: Sequence[Any]) -> list[BatchOperationDescriptor]:
        plain = [op for op in operations if isinstance(op, BatchOperation)]
        if len(plain) == len(operations):
            return BatchOperationDescriptor.from_operations(plain)
        return sorted(operations, key=lambda op: op.sequence_index)
