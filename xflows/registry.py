"""Registry of guards, actions, actors, transforms and template filters.

A Registry is an ordinary value: build one, register host extensions on it
and pass it to compile_flow(). Independent registries can coexist in one
process; nothing is looked up globally.

    registry = (
        Registry()
        .register_guard("isAdult", lambda ctx, ev: ctx["age"] >= 18, reads=["context.age"])
        .register_action("stamp", stamp_fn, writes=["context.stampedAt"])
        .register_actor("fetchQuote", fetch_quote)
    )
"""

import json
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from xflows.actions import ActionFn, ActionSpec, builtin_actions
from xflows.actors import BaseActor, HttpActor, PromiseActor, RandomNumberActor, TimerActor
from xflows.bindings import TransformFn
from xflows.config import RuntimeConfig
from xflows.guards import GuardFn
from xflows.models import ActorDefinition, ActorKind
from xflows.templates import FilterFn, TemplateRenderer


class ActorResolutionError(ValueError):
    """A flow-level actor definition could not be turned into an actor."""


def _to_number(value: Any) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def _to_boolean(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


BUILTIN_TRANSFORMS: dict[str, TransformFn] = {
    "toNumber": _to_number,
    "toString": lambda value: "" if value is None else str(value),
    "toBoolean": _to_boolean,
    "trim": lambda value: str(value).strip(),
    "uppercase": lambda value: str(value).upper(),
    "lowercase": lambda value: str(value).lower(),
    "jsonParse": lambda value: json.loads(value) if isinstance(value, str) else value,
}


class Registry:
    """Catalog of named units a flow definition can reference."""

    def __init__(
        self,
        include_builtins: bool = True,
        *,
        config: RuntimeConfig | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or RuntimeConfig()
        self.http_transport = http_transport
        self.renderer = TemplateRenderer()

        self._guards: dict[str, tuple[GuardFn, tuple[str, ...]]] = {}
        self._actions: dict[str, ActionSpec] = {}
        self._actors: dict[str, BaseActor] = {}
        self._transforms: dict[str, TransformFn] = {}

        if include_builtins:
            self._actions.update(builtin_actions(self.renderer))
            self._transforms.update(BUILTIN_TRANSFORMS)
            self._actors["httpRequest"] = self._http_actor(None)
            self._actors["delay"] = TimerActor()
            self._actors["randomNumber"] = RandomNumberActor()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_guard(self, name: str, fn: GuardFn, reads: Iterable[str] = ()) -> "Registry":
        self._guards[name] = (fn, tuple(reads))
        return self

    def register_action(
        self,
        name: str,
        fn: ActionFn,
        reads: Iterable[str] = (),
        writes: Iterable[str] = (),
    ) -> "Registry":
        """Register `fn(context, event, params) -> context`.

        `reads`/`writes` declare the scoped paths the action touches; they feed
        the compile-time check for guards reading never-written fields.
        """
        self._actions[name] = ActionSpec(name=name, fn=fn, reads=tuple(reads), writes=tuple(writes))
        return self

    def register_actor(self, name: str, actor: BaseActor | Callable[..., Any]) -> "Registry":
        """Register an actor object, or a plain/async callable `fn(input, context, event)`."""
        if not hasattr(actor, "invoke"):
            actor = PromiseActor(actor, name=name)
        self._actors[name] = actor  # type: ignore[assignment]
        return self

    def register_transform(self, name: str, fn: TransformFn) -> "Registry":
        self._transforms[name] = fn
        return self

    def register_filter(self, name: str, fn: FilterFn) -> "Registry":
        self.renderer.register_filter(name, fn)
        return self

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_guard(self, name: str) -> tuple[GuardFn, tuple[str, ...]] | None:
        return self._guards.get(name)

    def get_action(self, name: str) -> ActionSpec | None:
        return self._actions.get(name)

    def get_actor(self, name: str) -> BaseActor | None:
        return self._actors.get(name)

    def get_transform(self, name: str) -> TransformFn | None:
        return self._transforms.get(name)

    def has_guard(self, name: str) -> bool:
        return name in self._guards

    def has_action(self, name: str) -> bool:
        return name in self._actions

    def has_actor(self, name: str) -> bool:
        return name in self._actors

    @property
    def action_names(self) -> list[str]:
        return sorted(self._actions)

    @property
    def actor_names(self) -> list[str]:
        return sorted(self._actors)

    # ------------------------------------------------------------------
    # Flow-level actor definitions
    # ------------------------------------------------------------------

    def create_actor(self, name: str, definition: ActorDefinition) -> BaseActor:
        """
        Build an actor from a flow file's `actors` entry.

        Raises:
            ActorResolutionError: If the definition is invalid
        """
        kind = definition.get("type", ActorKind.HTTP if "http" in definition else None)
        try:
            kind = ActorKind(kind)
        except ValueError as e:
            raise ActorResolutionError(f"Actor '{name}' has unknown type '{kind}'") from e

        if kind == ActorKind.HTTP:
            http_config = definition.get("http")
            if not isinstance(http_config, dict) or not http_config.get("url"):
                raise ActorResolutionError(f"HTTP actor '{name}' needs an 'http.url'")
            actor = self._http_actor(http_config)
            actor.name = name
            return actor

        if kind == ActorKind.TIMER:
            ms = definition.get("ms", 0)
            if not isinstance(ms, (int, float)) or ms < 0:
                raise ActorResolutionError(f"Timer actor '{name}' needs a non-negative 'ms'")
            return TimerActor(ms=ms)

        src = definition.get("src")
        wrapped = self.get_actor(src) if isinstance(src, str) else None
        if wrapped is None:
            raise ActorResolutionError(f"Promise actor '{name}' wraps unknown actor '{src}'")
        return wrapped

    def _http_actor(self, config: dict[str, Any] | None) -> HttpActor:
        return HttpActor(
            config,  # type: ignore[arg-type]
            renderer=self.renderer,
            base_url=self.config.http_base_url,
            timeout_ms=self.config.http_timeout_ms,
            transport=self.http_transport,
        )
