"""
Views, models and the view renderer registry.

A controller returns a View: a view name plus a Model. The registry maps view
name patterns to renderers and picks the first pattern (in registration
order) that matches the whole view name.

Example::

    views = ViewRendererRegistry()

    class UserViews(BasicViewRenderer):
        @render_for("user/show")
        def show(self, model):
            return f"<h1>{model['name']}</h1>"

    views.register("user/.*", UserViews())
    views.render("user/show", Model(name="Ada"))   # "<h1>Ada</h1>"
"""

import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Pattern, Tuple, Union

from .exceptions import NoViewRendererError, ViewError, ViewRenderingError
from .models import Response
from .registry import FreezableRegistry, LazyProvider

logger = logging.getLogger(__name__)


class Model(Mapping[str, Any]):
    """Named attributes passed from a controller to a view."""

    def __init__(self, *args: Mapping[str, Any], **attributes: Any):
        self._attributes: Dict[str, Any] = {}
        for mapping in args:
            self.add_all_attributes(mapping)
        self.add_all_attributes(attributes)

    def add_attribute(self, name: str, value: Any) -> "Model":
        self._attributes[name] = value
        return self

    def add_all_attributes(self, attributes: Mapping[str, Any]) -> "Model":
        self._attributes.update(attributes)
        return self

    def merge_attributes(self, attributes: Mapping[str, Any]) -> "Model":
        """Add attributes, keeping any existing value under the same name."""
        for name, value in attributes.items():
            self._attributes.setdefault(name, value)
        return self

    def contains_attribute(self, name: str) -> bool:
        return name in self._attributes

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._attributes)

    def __getitem__(self, name: str) -> Any:
        return self._attributes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __repr__(self):
        return f"Model({self._attributes!r})"


class View:
    """A view name and the model to render it with."""

    def __init__(self, name: str, model: Optional[Mapping[str, Any]] = None, **attributes: Any):
        self.name = name
        self.model = model if isinstance(model, Model) else Model(model or {})
        self.model.add_all_attributes(attributes)

    def __repr__(self):
        return f"View({self.name!r}, {self.model!r})"


class ViewRenderer:
    """Base class for view renderers."""

    def render(self, view_name: str, model: Model) -> str:
        raise NotImplementedError


def render_for(*view_names: str):
    """Mark a BasicViewRenderer method as rendering the given view names."""

    def decorator(func: Callable[..., str]):
        func._renders_views = view_names
        return func

    return decorator


class BasicViewRenderer(ViewRenderer):
    """Dispatches to methods marked with ``@render_for`` by exact view name."""

    def __init__(self):
        self._methods: Dict[str, Callable[[Model], str]] = {}
        for name in dir(type(self)):
            member = getattr(type(self), name, None)
            for view_name in getattr(member, "_renders_views", ()):
                self._methods[view_name] = getattr(self, name)

    @property
    def view_names(self) -> List[str]:
        return list(self._methods)

    def render(self, view_name: str, model: Model) -> str:
        method = self._methods.get(view_name)
        if method is None:
            raise NoViewRendererError(view_name)
        return method(model)


class ViewRendererEntry:
    def __init__(self, pattern: Pattern[str], provider: Callable[[], ViewRenderer]):
        self.pattern = pattern
        self.provider = LazyProvider(provider)

    def renderer(self) -> ViewRenderer:
        return self.provider.get()


class ViewRendererRegistry(FreezableRegistry):
    """Ordered view name patterns and their renderers.

    When several patterns match a view name, the one registered first wins.
    """

    def __init__(self):
        super().__init__()
        self._entries: List[ViewRendererEntry] = []

    @property
    def patterns(self) -> List[str]:
        return [entry.pattern.pattern for entry in self._entries]

    def register(self, pattern: Union[str, Pattern[str]], renderer: Any) -> None:
        """Register a renderer, a renderer class, or a zero-argument provider for a view name pattern."""
        self._check_mutable()
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        if isinstance(renderer, ViewRenderer):
            instance = renderer
            provider: Callable[[], ViewRenderer] = lambda: instance
        elif callable(renderer):
            provider = renderer
        else:
            raise TypeError(f"Renderer for '{compiled.pattern}' must be a ViewRenderer or a provider")
        self._entries.append(ViewRendererEntry(compiled, provider))
        logger.debug(f"Registered view renderer for '{compiled.pattern}'")

    def renders(self, pattern: Union[str, Pattern[str]]):
        """Class decorator registering a ViewRenderer subclass for a pattern."""

        def decorator(cls):
            self.register(pattern, cls)
            return cls

        return decorator

    def resolve(self, view_name: str) -> Optional[ViewRenderer]:
        """Return the renderer of the first pattern matching the whole view name, or None."""
        found = self._find(view_name)
        return found[1] if found else None

    def render(self, view_name: str, model: Optional[Mapping[str, Any]] = None, response: Optional[Response] = None) -> str:
        """Render a view, writing the output to the response if one is given.

        A ViewError raised by the renderer itself, such as a BasicViewRenderer
        that does not know the view name, propagates unwrapped.

        Raises:
            NoViewRendererError: If no pattern matches the view name, or the renderer does not know it
            ViewRenderingError: If the selected renderer fails
        """
        found = self._find(view_name)
        if found is None:
            raise NoViewRendererError(view_name)
        pattern, renderer = found

        model = model if isinstance(model, Model) else Model(model or {})
        try:
            output = renderer.render(view_name, model)
        except ViewError:
            raise
        except Exception as e:
            logger.error(f"{type(renderer).__name__} failed to render view '{view_name}' (pattern '{pattern}'): {e}")
            raise ViewRenderingError(view_name, e) from e

        if response is not None and output:
            response.write(output)
        return output

    def _find(self, view_name: str) -> Optional[Tuple[str, ViewRenderer]]:
        for entry in self._entries:
            if entry.pattern.fullmatch(view_name):
                return entry.pattern.pattern, entry.renderer()
        return None
