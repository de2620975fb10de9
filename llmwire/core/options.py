"""
llmwire - Stream Options

Pydantic models for the options accepted by the streaming entry points.
Vendor adapters subclass ``StreamOptions`` with their own knobs.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidInputError
from .models import ThinkingBudgets, ThinkingLevel


PayloadHook = Callable[[Dict[str, Any]], Any]

O = TypeVar("O", bound="StreamOptions")


class StreamOptions(BaseModel):
    """Options understood by every adapter."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    # Cancellation token; setting it aborts the call
    signal: Optional[asyncio.Event] = None
    api_key: Optional[str] = None
    session_id: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    # Receives the raw vendor request; exceptions are ignored
    on_payload: Optional[PayloadHook] = None


class SimpleStreamOptions(StreamOptions):
    """Ergonomic options mapped onto the vendor-specific ones by ``stream_simple``."""

    reasoning: Optional[ThinkingLevel] = None
    thinking_budgets: Optional[ThinkingBudgets] = None


def coerce_options(
    options: Union[None, Dict[str, Any], StreamOptions],
    cls: Type[O],
) -> O:
    """
    Convert caller-supplied options to ``cls``.

    Dicts are validated strictly. Option objects of another class keep only
    the fields ``cls`` knows about, so generic options can be passed to any
    adapter.

    Raises:
        InvalidInputError: if the options fail validation
    """
    if options is None:
        return cls()
    if isinstance(options, cls):
        return options
    if isinstance(options, dict):
        data = options
    else:
        fields = {name: getattr(options, name) for name in options.model_fields_set}
        data = {k: v for k, v in fields.items() if k in cls.model_fields}
    try:
        return cls(**data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid options: {e}", param="options") from e
