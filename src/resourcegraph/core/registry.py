"""
Resource registry - static registration table of exposed resources.

Reads ViewSet configurations once at startup and keeps
resource name -> (CapabilityDescriptor, model) bindings.
No per-request type inspection happens after registration.

Usage:
    from resourcegraph.core.registry import ResourceRegistry

    registry = ResourceRegistry()
    registry.register(ProductViewSet)
    registry.register(CategoryViewSet)

    binding = registry.get("products")
    binding.descriptor.filterable_fields
"""

from __future__ import annotations


from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy.orm import DeclarativeBase

from .defs import CapabilityDescriptor
from .errors import GraphConfigError, NotFoundError


# Names used by the engine's own endpoints
RESERVED_NAMES = frozenset({"batch", "ping", "__resources"})


@dataclass(frozen=True)
class ResourceBinding:
    """A registered resource: its descriptor and the model it reads and writes."""
    descriptor: CapabilityDescriptor
    model: type[DeclarativeBase]

    @property
    def name(self) -> str:
        return self.descriptor.resource_name


class ResourceRegistry:
    """
    Collects capability descriptors from ViewSets.

    Example:
        registry = ResourceRegistry()
        registry.register(ProductViewSet)
        registry.get("products").descriptor
    """

    def __init__(self, viewsets: Optional[Iterable[type]] = None):
        self._bindings: dict[str, ResourceBinding] = {}
        self._by_model: dict[type, ResourceBinding] = {}
        for viewset in viewsets or []:
            self.register(viewset)

    def register(self, viewset: type) -> ResourceBinding:
        """
        Register a viewset.

        Raises:
            GraphConfigError: invalid declaration, reserved or duplicate name
        """
        descriptor = viewset.to_descriptor()
        name = descriptor.resource_name

        if not name or "/" in name:
            raise GraphConfigError(f"{viewset.__name__}: invalid resource name '{name}'")
        if name in RESERVED_NAMES:
            raise GraphConfigError(f"{viewset.__name__}: resource name '{name}' is reserved")
        if name in self._bindings:
            raise GraphConfigError(f"Resource '{name}' is already registered")

        binding = ResourceBinding(descriptor=descriptor, model=viewset.model)
        self._bindings[name] = binding
        self._by_model.setdefault(viewset.model, binding)
        return binding

    def get(self, name: str) -> ResourceBinding:
        """
        Get binding by resource name.

        Raises:
            NotFoundError: resource is not registered
        """
        binding = self._bindings.get(name)
        if binding is None:
            raise NotFoundError(name)
        return binding

    def for_model(self, model: type) -> Optional[ResourceBinding]:
        """Binding registered for a model class, if any."""
        return self._by_model.get(model)

    def names(self) -> list[str]:
        return list(self._bindings)

    def bindings(self) -> list[ResourceBinding]:
        return list(self._bindings.values())

    def __contains__(self, name: object) -> bool:
        return name in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    def describe(self) -> dict[str, Any]:
        """All descriptors as plain dicts (served at /__resources)."""
        return {name: b.descriptor.to_dict() for name, b in self._bindings.items()}
