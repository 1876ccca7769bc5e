"""Registries resolving workflow and activity names to functions.

User code marks functions with the ``@activity`` and ``@workflow``
decorators. The host process imports the user module once, ahead of time,
with ``load_module`` and builds registries from it; the engine only ever
receives function values.
"""

from __future__ import annotations

import inspect
import sys
from importlib import import_module
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

from ..errors import UnknownActivityError, UnknownWorkflowError
from .models import ActivityDescriptor, SemanticVersion, WorkflowDescriptor

_ACTIVITY_MARK = "__replayflow_activity__"
_WORKFLOW_MARK = "__replayflow_workflow__"

F = TypeVar("F", bound=Callable[..., Any])
D = TypeVar("D", ActivityDescriptor, WorkflowDescriptor)


def activity(
    name: Optional[str] = None,
    version: str = "1.0.0",
    description: Optional[str] = None,
) -> Callable[[F], F]:
    """Mark ``fn`` as an activity so ``load_module`` can pick it up."""

    def decorator(fn: F) -> F:
        setattr(
            fn,
            _ACTIVITY_MARK,
            {"name": name or fn.__name__, "version": version, "description": description},
        )
        return fn

    return decorator


def workflow(
    name: Optional[str] = None, description: Optional[str] = None
) -> Callable[[F], F]:
    """Mark ``fn`` as a workflow function so ``load_module`` can pick it up."""

    def decorator(fn: F) -> F:
        setattr(fn, _WORKFLOW_MARK, {"name": name or fn.__name__, "description": description})
        return fn

    return decorator


class _Registry(Generic[D]):
    _missing_error: type = LookupError

    def __init__(self) -> None:
        self._entries: Dict[str, D] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> List[str]:
        return sorted(self._entries)

    def descriptors(self) -> List[D]:
        return [self._entries[name] for name in self.names()]

    def _add(self, descriptor: D) -> D:
        if descriptor.name in self._entries:
            raise ValueError(f"'{descriptor.name}' is already registered")
        self._entries[descriptor.name] = descriptor
        return descriptor

    def _lookup(self, name: str) -> D:
        try:
            return self._entries[name]
        except KeyError:
            raise self._missing_error(f"'{name}' is not registered") from None


class ActivityRegistry(_Registry[ActivityDescriptor]):
    """Named activity implementations, optionally versioned."""

    _missing_error = UnknownActivityError

    def add(
        self,
        fn: Callable[..., Any],
        name: Optional[str] = None,
        version: str = "1.0.0",
        description: Optional[str] = None,
    ) -> ActivityDescriptor:
        return self._add(
            ActivityDescriptor(
                name=name or fn.__name__,
                version=SemanticVersion.parse(version),
                description=description or inspect.getdoc(fn),
                fn=fn,
            )
        )

    def register(
        self, name: Optional[str] = None, version: str = "1.0.0"
    ) -> Callable[[F], F]:
        """Decorator registering ``fn`` directly in this registry."""

        def decorator(fn: F) -> F:
            self.add(fn, name=name, version=version)
            return fn

        return decorator

    def get(self, name: str, version: Optional[str] = None) -> Callable[..., Any]:
        """Return the implementation for ``name``.

        Raises:
            UnknownActivityError: If ``name`` is unknown or registered with a
                different version than requested.
        """
        descriptor = self._lookup(name)
        if version and str(descriptor.version) != version:
            raise UnknownActivityError(
                f"'{name}' version {version} is not registered "
                f"(available: {descriptor.version})"
            )
        return descriptor.fn

    @classmethod
    def from_module(cls, module: ModuleType) -> "ActivityRegistry":
        """Collect every ``@activity`` function defined in ``module``.

        A module-level ``activities`` mapping of name to function is also
        honoured.
        """
        registry = cls()
        for fn in _marked(module, _ACTIVITY_MARK):
            registry.add(fn, **getattr(fn, _ACTIVITY_MARK))
        exported = getattr(module, "activities", None)
        if isinstance(exported, dict):
            for name, fn in exported.items():
                if callable(fn) and name not in registry:
                    registry.add(fn, name=name)
        return registry


class WorkflowRegistry(_Registry[WorkflowDescriptor]):
    """Named workflow functions."""

    _missing_error = UnknownWorkflowError

    def add(
        self,
        fn: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> WorkflowDescriptor:
        return self._add(
            WorkflowDescriptor(
                name=name or fn.__name__,
                description=description or inspect.getdoc(fn),
                fn=fn,
            )
        )

    def register(self, name: Optional[str] = None) -> Callable[[F], F]:
        def decorator(fn: F) -> F:
            self.add(fn, name=name)
            return fn

        return decorator

    def get(self, name: str) -> Callable[..., Any]:
        return self._lookup(name).fn

    def only(self) -> Callable[..., Any]:
        """Return the single registered workflow, failing when ambiguous."""
        if len(self._entries) != 1:
            raise UnknownWorkflowError(
                f"Expected exactly one workflow, found {len(self._entries)}: {self.names()}"
            )
        return next(iter(self._entries.values())).fn

    @classmethod
    def from_module(cls, module: ModuleType) -> "WorkflowRegistry":
        registry = cls()
        for fn in _marked(module, _WORKFLOW_MARK):
            registry.add(fn, **getattr(fn, _WORKFLOW_MARK))
        return registry


def _marked(module: ModuleType, mark: str) -> List[Callable[..., Any]]:
    found = []
    seen = set()
    for _, value in sorted(vars(module).items()):
        if callable(value) and hasattr(value, mark) and id(value) not in seen:
            seen.add(id(value))
            found.append(value)
    return found


def load_module(target: Union[str, Path]) -> ModuleType:
    """Import ``target``, either a ``.py`` file path or a dotted module name.

    Raises:
        ValueError: If the file cannot be loaded.
    """
    path = Path(target).expanduser()
    if path.suffix == ".py":
        if not path.is_file():
            raise ValueError(f"Module file {path} does not exist")
        path = path.resolve()
        module_name = path.stem
        spec = spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ValueError(f"Cannot load module from {path}")
        module = module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
        return module
    return import_module(str(target))


__all__ = [
    "ActivityDescriptor",
    "ActivityRegistry",
    "SemanticVersion",
    "WorkflowDescriptor",
    "WorkflowRegistry",
    "activity",
    "load_module",
    "workflow",
]
