"""Payload models for the command dispatcher's actions."""

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Fields copied from a payload onto the ``action:<name>`` event
EVENT_FIELDS = {'url', 'selector', 'state', 'text', 'expression'}


def coerce_timeout_ms(value: Any) -> float | None:
    """Numeric timeouts pass through; anything else means "use the default"."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


class ActionParams(BaseModel):
    """Base model for action payloads.

    Keys arrive in camelCase (``pageId``, ``timeoutMs``); unrelated keys such
    as ``action`` are ignored.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    def event_fields(self) -> dict[str, Any]:
        return self.model_dump(include=EVENT_FIELDS, exclude_none=True)


class PageActionParams(ActionParams):
    """Payload of an action that targets one page."""

    page_id: str | None = Field(default=None, description='Target page id')

    @field_validator('page_id', mode='before')
    @classmethod
    def _page_id_as_string(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) or (isinstance(value, float) and value.is_integer()):
            return str(int(value))
        if isinstance(value, float):
            # 1.7 stays '1.7' and fails the registry lookup
            return str(value)
        return value


class TimedPageActionParams(PageActionParams):
    timeout_ms: float | None = Field(default=None, description='Driver timeout for this call')

    @field_validator('timeout_ms', mode='before')
    @classmethod
    def _numeric_timeout(cls, value: Any) -> float | None:
        return coerce_timeout_ms(value)


class NewPageParams(ActionParams):
    pass


class GotoParams(TimedPageActionParams):
    url: str
    wait_until: Literal['load', 'domcontentloaded', 'networkidle', 'commit'] = 'load'


class ClickParams(TimedPageActionParams):
    selector: str
    options: dict[str, Any] | None = Field(default=None, description='Driver click options, camelCase accepted')


class WaitForSelectorParams(TimedPageActionParams):
    selector: str
    state: Literal['attached', 'detached', 'visible', 'hidden'] = 'visible'


class TypeParams(PageActionParams):
    selector: str
    text: str
    delay: float | None = None


class FillParams(TimedPageActionParams):
    selector: str
    value: str


class EvaluateParams(PageActionParams):
    """``expression`` is the body of ``async (arg) => { ... }``."""

    expression: str
    arg: Any = None


class ScreenshotParams(PageActionParams):
    full_page: bool = False


class ClosePageParams(PageActionParams):
    pass


class ServiceWorkerEvaluateParams(ActionParams):
    expression: str
    arg: Any = None
    extension_id: str | None = None


class RegisteredAction(BaseModel):
    """Model for a registered action."""

    name: str
    description: str
    function: Callable
    param_model: type[ActionParams]
    page_scoped: bool = True

    model_config = ConfigDict(arbitrary_types_allowed=True)
