"""
Template rendering helpers for views.
"""

import os
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, PackageLoader, Template, select_autoescape
from jinja2.loaders import BaseLoader

from .views import Model, ViewRenderer


def find_loader(package: str) -> BaseLoader:
    """
    Find a template loader for a directory path or a package name.

    If ``package`` is a directory (absolute, or relative to the current
    directory), a FileSystemLoader is used. Otherwise a PackageLoader is
    attempted.

    Raises:
        ValueError: If neither a directory nor an importable package is found
    """
    possible_paths = [
        package,
        os.path.join(os.getcwd(), package),
    ]
    for path in possible_paths:
        if os.path.isdir(path):
            return FileSystemLoader(path)

    try:
        return PackageLoader(package)
    except (ImportError, ValueError):
        # Neither a directory nor an importable package
        pass

    raise ValueError(
        f"Could not find template directory or package '{package}'. "
        f"Tried paths: {possible_paths}"
    )


class JinjaViewRenderer(ViewRenderer):
    """
    Render views from Jinja2 templates.

    The view name (plus ``suffix``) is the template path, and the model
    attributes are the template context.

    Example::

        views.register("users/.*", JinjaViewRenderer("./templates"))
        views.render("users/show", Model(user=user))   # renders templates/users/show.html

    Args:
        package: Template directory path or package name
        suffix: Appended to the view name to form the template path
        unsafe: If False (default), autoescape is enabled.
               If True, autoescape is disabled (use with caution).
        loader: Explicit Jinja2 loader, overriding ``package``
    """

    def __init__(
        self,
        package: str = "views",
        suffix: str = ".html",
        unsafe: bool = False,
        loader: Optional[BaseLoader] = None,
    ):
        self.suffix = suffix
        # Note: autoescape can be disabled via unsafe=True for trusted content
        self.environment = Environment(  # nosec B701
            loader=loader or find_loader(package),
            autoescape=select_autoescape(default_for_string=True, default=True) if not unsafe else False,
        )

    def template_name(self, view_name: str) -> str:
        return f"{view_name}{self.suffix}"

    def render(self, view_name: str, model: Model) -> str:
        template = self.environment.get_template(self.template_name(view_name))
        return template.render(**model.as_dict())


def render_inline(source: str, unsafe: bool = False, **kwargs: Any) -> str:
    """
    Render an inline template string.

    Example::

        render_inline("<h1>{{ title }}</h1>", title="Welcome")
    """
    return Template(source, autoescape=not unsafe).render(**kwargs)
