"""Configuration for MvcApplication."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class MvcConfig:
    """Configuration of the MVC runtime.

    Attributes:
        freeze_on_first_request: Freeze every registry when the first request
                                 is handled. Registrations made afterwards
                                 raise RegistryFrozenError.

        default_content_type: Content type of responses rendered from a view
                              or a plain string when the controller sets none.

        template_directory: Optional directory (or package name) of Jinja2
                            templates. When set, a JinjaViewRenderer is
                            registered for every view name (".*"), after all
                            other renderers.

        template_suffix: Appended to view names to find the template file.

        autoescape: Escape HTML in template output.

        cache_size: When set, responses may be cached in memory: a Cache
                    dependency is bound to an InMemoryCache and cached
                    responses are served before routing. The value is the
                    maximum number of cached paths.

    Examples:
        # Defaults
        MvcConfig()

        # Templates from ./templates, cache up to 500 paths
        MvcConfig(template_directory="./templates", cache_size=500)
    """

    freeze_on_first_request: bool = True

    default_content_type: str = "text/html"

    template_directory: Optional[str] = None
    template_suffix: str = ".html"
    autoescape: bool = True

    cache_size: Optional[int] = None
