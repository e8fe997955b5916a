"""Pydantic models for structural validation of flow definitions.

These models check the shape of a definition (field names, types, value
ranges) before the compiler resolves references. Reference and graph checks
belong to the compiler; keep this module free of them.
"""

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from xflows.models import CompileError, CompileErrorType

ActionRefModel = Union[str, dict[str, Any]]
GuardRefModel = Union[str, dict[str, Any]]


class BaseFlowModel(BaseModel):
    """Base model with common configuration for all flow validation models."""

    model_config = ConfigDict(
        extra="forbid",  # Catch misspelled keys
        str_strip_whitespace=True,
    )


class RetryModel(BaseFlowModel):
    max: int = Field(default=0, ge=0, description="Retries after the first attempt")
    backoffMs: float = Field(default=1000, ge=0)
    multiplier: float = Field(default=2.0, gt=0)


class TransitionModel(BaseFlowModel):
    target: str | None = None
    guard: GuardRefModel | None = None
    cond: GuardRefModel | None = None
    actions: list[ActionRefModel] = Field(default_factory=list)
    description: str | None = None


TransitionConfigModel = Union[str, TransitionModel, list[Union[str, TransitionModel]]]


class AfterModel(BaseFlowModel):
    delay: int = Field(ge=0, description="Delay in milliseconds")
    target: str | None = None
    guard: GuardRefModel | None = None
    cond: GuardRefModel | None = None
    actions: list[ActionRefModel] = Field(default_factory=list)


class BindingModel(BaseFlowModel):
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    transform: str | None = None


class BindingsModel(BaseFlowModel):
    inputs: list[BindingModel] = Field(default_factory=list)
    outputs: list[BindingModel] = Field(default_factory=list)


class InvokeModel(BaseFlowModel):
    id: str | None = None
    src: str = Field(min_length=1)
    input: Any = None
    timeoutMs: int | None = Field(default=None, gt=0)
    retry: RetryModel | None = None
    cacheKey: str | None = None
    cacheTtlMs: int | None = Field(default=None, ge=0)
    mapResult: dict[str, str] | None = None
    assignTo: str | None = None
    onDone: TransitionConfigModel | None = None
    onError: TransitionConfigModel | None = None


class LifecycleModel(BaseFlowModel):
    onEnter: list[ActionRefModel] = Field(default_factory=list)
    onExit: list[ActionRefModel] = Field(default_factory=list)


class ComputedFieldModel(BaseFlowModel):
    field: str = Field(min_length=1)
    expression: Any
    cache: bool = False


class ValidationRuleModel(BaseFlowModel):
    field: str = Field(min_length=1)
    expression: Any
    message: str | None = None


class LogicModel(BaseFlowModel):
    computed: list[ComputedFieldModel] = Field(default_factory=list)
    validations: list[ValidationRuleModel] = Field(default_factory=list)


class StateModel(BaseFlowModel):
    type: Literal["atomic", "compound", "final"] | None = None
    initial: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    meta: dict[str, Any] | None = None
    ui: dict[str, Any] | None = None
    lifecycle: LifecycleModel | None = None
    entry: list[ActionRefModel] | None = None
    exit: list[ActionRefModel] | None = None
    binding: BindingsModel | None = None
    logic: LogicModel | None = None
    invoke: InvokeModel | list[InvokeModel] | None = None
    on: dict[str, TransitionConfigModel] | None = None
    after: list[AfterModel] | dict[str | int, TransitionConfigModel] | None = None
    states: dict[str, "StateModel"] | None = None

    @field_validator("after")
    @classmethod
    def validate_after_keys(cls, v):
        """Mapping form keys are delays in milliseconds."""
        if isinstance(v, dict):
            for key in v:
                if not str(key).isdigit():
                    raise ValueError(f"after delay '{key}' must be a non-negative integer")
        return v


class FlowModel(BaseFlowModel):
    id: str | None = None
    version: str | None = None
    name: str | None = None
    description: str | None = None
    initial: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    states: dict[str, StateModel] = Field(min_length=1)
    guards: dict[str, GuardRefModel] = Field(default_factory=dict)
    actions: dict[str, ActionRefModel] = Field(default_factory=dict)
    actors: dict[str, dict[str, Any]] = Field(default_factory=dict)
    meta: dict[str, Any] | None = None


def check_structure(definition: Any) -> list[CompileError]:
    """Validate the shape of a flow definition.

    Returns:
        One SCHEMA_ERROR per problem reported by pydantic (empty when valid)
    """
    if not isinstance(definition, dict):
        return [CompileError(CompileErrorType.SCHEMA_ERROR, "Flow definition must be an object")]

    try:
        FlowModel.model_validate(definition)
    except ValidationError as e:
        return [_to_compile_error(error) for error in e.errors()]
    return []


def _to_compile_error(error: dict[str, Any]) -> CompileError:
    location = ".".join(str(part) for part in error.get("loc", ()))
    state_id = _state_from_location(error.get("loc", ()))
    return CompileError(
        error_type=CompileErrorType.SCHEMA_ERROR,
        message=f"{location}: {error.get('msg', 'invalid value')}" if location else error.get("msg", ""),
        state_id=state_id,
        context={"location": location, "type": error.get("type")},
    )


def _state_from_location(loc: tuple[Any, ...]) -> str | None:
    # ("states", "a", "states", "b", "on", ...) -> "a.b"
    parts: list[str] = []
    index = 0
    while index + 1 < len(loc) and loc[index] == "states":
        parts.append(str(loc[index + 1]))
        index += 2
    return ".".join(parts) or None
