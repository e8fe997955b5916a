"""Data bindings between a flow's context and external stores.

A binding descriptor names a source and a target, each tagged with a store
prefix, plus an optional transform registered on the Registry:

    {"source": "url.query.ref", "target": "context.referral"}
    {"source": "localStorage.draft", "target": "context.form", "transform": "jsonParse"}
    {"source": "context.form.email", "target": "sessionStorage.lastEmail"}

Inputs run on state entry and must write into the context. Outputs run on
state exit and must read from the context. Prefixes are checked at compile
time.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

from xflows.models import BindingDefinition, BindingStore
from xflows.paths import get_path, set_path

if TYPE_CHECKING:
    from xflows.registry import Registry

logger = logging.getLogger(__name__)

TransformFn = Callable[[Any], Any]


class BindingError(ValueError):
    """One or more problems in a binding descriptor."""

    def __init__(self, problems: list[str]):
        super().__init__("; ".join(problems))
        self.problems = problems


class ExternalStores(Protocol):
    """Host-provided access to the stores bindings read from and write to."""

    def read(self, store: BindingStore, key: str) -> Any: ...

    def write(self, store: BindingStore, key: str, value: Any) -> None: ...


class InMemoryStores:
    """Dict-backed stores, used when the host supplies none.

    Storage keys support dot paths ("draft.email"); URL query keys are flat.
    """

    def __init__(
        self,
        url_query: dict[str, Any] | None = None,
        local_storage: dict[str, Any] | None = None,
        session_storage: dict[str, Any] | None = None,
    ):
        self.url_query: dict[str, Any] = dict(url_query or {})
        self.local_storage: dict[str, Any] = dict(local_storage or {})
        self.session_storage: dict[str, Any] = dict(session_storage or {})

    def read(self, store: BindingStore, key: str) -> Any:
        if store == BindingStore.URL_QUERY:
            return self.url_query.get(key)
        return get_path(self._storage(store), key)

    def write(self, store: BindingStore, key: str, value: Any) -> None:
        if store == BindingStore.URL_QUERY:
            self.url_query[key] = value
        elif store == BindingStore.LOCAL_STORAGE:
            self.local_storage = set_path(self.local_storage, key, value)
        elif store == BindingStore.SESSION_STORAGE:
            self.session_storage = set_path(self.session_storage, key, value)
        else:
            raise ValueError(f"Store '{store}' is not external")

    def _storage(self, store: BindingStore) -> dict[str, Any]:
        if store == BindingStore.LOCAL_STORAGE:
            return self.local_storage
        if store == BindingStore.SESSION_STORAGE:
            return self.session_storage
        raise ValueError(f"Store '{store}' is not external")


@dataclass(frozen=True)
class CompiledBinding:
    """A binding with parsed prefixes and a resolved transform."""

    source_store: BindingStore
    source_key: str
    target_store: BindingStore
    target_key: str
    transform_name: str | None = None
    transform: TransformFn | None = field(default=None, compare=False)

    @property
    def source(self) -> str:
        return f"{self.source_store.value}.{self.source_key}"

    @property
    def target(self) -> str:
        return f"{self.target_store.value}.{self.target_key}"


def parse_binding(
    binding: BindingDefinition,
    registry: "Registry",
    direction: Literal["input", "output"],
) -> CompiledBinding:
    """
    Validate and compile one binding descriptor.

    Raises:
        BindingError: Listing every problem found in the descriptor
    """
    problems: list[str] = []
    source = binding.get("source") if isinstance(binding, dict) else None
    target = binding.get("target") if isinstance(binding, dict) else None

    if not isinstance(source, str) or not source:
        problems.append("binding is missing 'source'")
    if not isinstance(target, str) or not target:
        problems.append("binding is missing 'target'")
    if problems:
        raise BindingError(problems)

    source_parts = BindingStore.split(source)
    target_parts = BindingStore.split(target)
    if source_parts is None:
        problems.append(f"unknown source prefix in '{source}'")
    if target_parts is None:
        problems.append(f"unknown target prefix in '{target}'")

    if direction == "input" and target_parts and target_parts[0] != BindingStore.CONTEXT:
        problems.append(f"input binding must target the context, got '{target}'")
    if direction == "output":
        if source_parts and source_parts[0] != BindingStore.CONTEXT:
            problems.append(f"output binding must read from the context, got '{source}'")
        if target_parts and target_parts[0] == BindingStore.CONTEXT:
            problems.append(f"output binding must target an external store, got '{target}'")

    transform_name = binding.get("transform")
    transform = None
    if transform_name is not None:
        transform = registry.get_transform(transform_name)
        if transform is None:
            problems.append(f"unknown transform '{transform_name}'")

    if problems or source_parts is None or target_parts is None:
        raise BindingError(problems)

    return CompiledBinding(
        source_store=source_parts[0],
        source_key=source_parts[1],
        target_store=target_parts[0],
        target_key=target_parts[1],
        transform_name=transform_name,
        transform=transform,
    )


def _transformed(binding: CompiledBinding, value: Any) -> tuple[bool, Any]:
    if binding.transform is None:
        return True, value
    try:
        return True, binding.transform(value)
    except Exception as e:
        logger.warning(
            f"Transform '{binding.transform_name}' failed for {binding.source} -> {binding.target}: {e}"
        )
        return False, None


def apply_inputs(bindings: Iterable[CompiledBinding], context: Any, stores: ExternalStores) -> Any:
    """Read each source and write it into the context; returns the new context.

    Sources with no value leave their target untouched.
    """
    result = context
    for binding in bindings:
        if binding.source_store == BindingStore.CONTEXT:
            value = get_path(result, binding.source_key)
        else:
            value = stores.read(binding.source_store, binding.source_key)
        if value is None:
            continue
        ok, value = _transformed(binding, value)
        if ok:
            result = set_path(result, binding.target_key, value)
    return result


def apply_outputs(bindings: Iterable[CompiledBinding], context: Any, stores: ExternalStores) -> None:
    """Write context values out to their external targets."""
    for binding in bindings:
        value = get_path(context, binding.source_key)
        ok, value = _transformed(binding, value)
        if ok:
            stores.write(binding.target_store, binding.target_key, value)
