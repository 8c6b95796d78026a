"""
Lifecycle hook registry for a model class.

Hooks are declared on the model either as a class attribute holding method
names and/or callables::

    class Order(Model):
        before_save = ['normalize_state', lambda order: order.touch()]

or implicitly, by defining a method named after the event::

    class Order(Model):
        def after_create(self):
            ...
"""
import logging
import re
from collections.abc import Callable
from typing import Any

from activemodel.exceptions import ConfigurationError

__all__ = ['VALID_CALLBACKS', 'CallBack']

logger = logging.getLogger(__name__)

VALID_CALLBACKS = (
    'after_construct',
    'before_save',
    'after_save',
    'before_create',
    'after_create',
    'before_update',
    'after_update',
    'before_validation',
    'after_validation',
    'before_validation_on_create',
    'after_validation_on_create',
    'before_validation_on_update',
    'after_validation_on_update',
    'before_destroy',
    'after_destroy',
    )

_SAVE_EVENT = re.compile(r'^(?P<when>before|after)_(?:create|update)$')

Hook = str | Callable[[Any], Any]


class CallBack:
    """Ordered hooks per event for one model class.

    Args:
        model_class: class whose declarations are registered
    """

    def __init__(self, model_class: type) -> None:
        self.model_class = model_class
        self._registry: dict[str, list[Hook]] = {}

        for event in VALID_CALLBACKS:
            definition = getattr(model_class, event, None)
            if definition is None:
                continue
            if callable(definition):
                self.register(event, event)
                continue
            if isinstance(definition, (str, bytes)) or not isinstance(definition, (list, tuple)):
                definition = [definition]
            for hook in definition:
                self.register(event, hook)

    def __repr__(self) -> str:
        return f'<CallBack {self.model_class.__name__} {sorted(self._registry)}>'

    def get_callbacks(self, event: str) -> list[Hook] | None:
        hooks = self._registry.get(event)
        return list(hooks) if hooks is not None else None

    def register(self, event: str, hook: Hook | None = None, prepend: bool = False) -> None:
        """Add a hook for an event.

        Args:
            event: one of VALID_CALLBACKS
            hook: method name on the model or a callable taking the model;
                defaults to the event name
            prepend: run before the hooks already registered

        Raises
            ConfigurationError: unknown event or unknown method name
        """
        if event not in VALID_CALLBACKS:
            raise ConfigurationError(f'Invalid callback: {event}')
        if hook is None:
            hook = event
        if isinstance(hook, str):
            if hook.startswith('_'):
                raise ConfigurationError(
                    f'Callback methods need to be public, please rename '
                    f'{self.model_class.__name__}.{hook}()')
            if not callable(getattr(self.model_class, hook, None)):
                raise ConfigurationError(f'Unknown method for callback: {event}: #{hook}')
        elif not callable(hook):
            raise ConfigurationError(f'Callback for {event} must be a method name or callable, got {hook!r}')

        hooks = self._registry.setdefault(event, [])
        if prepend:
            hooks.insert(0, hook)
        else:
            hooks.append(hook)

    def _hooks_for(self, event: str) -> list[Hook]:
        hooks = list(self._registry.get(event, []))
        match = _SAVE_EVENT.match(event)
        if match:
            hooks = self._registry.get(f'{match.group("when")}_save', []) + hooks
        return hooks

    def invoke(self, model: Any, event: str, must_exist: bool = False) -> bool:
        """Run the hooks for an event on model.

        ``before_create``/``before_update`` (and the ``after_`` forms) run the
        matching ``*_save`` hooks first. A ``before_`` hook returning False
        stops the chain.

        Returns
            False if a ``before_`` hook aborted, otherwise True
        """
        if must_exist and event not in self._registry:
            raise ConfigurationError(
                f'No callbacks were defined for: {event} on {type(model).__name__}')

        is_before = event.startswith('before')
        for hook in self._hooks_for(event):
            result = getattr(model, hook)() if isinstance(hook, str) else hook(model)
            if result is False and is_before:
                logger.debug(f'{event} hook {hook!r} aborted on {type(model).__name__}')
                return False
        return True
