"""
Tests for models, views and view renderers.
"""

import pytest
from jinja2 import DictLoader

from mvcmachine.exceptions import NoViewRendererError, RegistryFrozenError, ViewRenderingError
from mvcmachine.template_helpers import JinjaViewRenderer, render_inline
from mvcmachine.views import BasicViewRenderer, Model, View, ViewRenderer, render_for


class NamedRenderer(ViewRenderer):
    def __init__(self, name):
        self.name = name

    def render(self, view_name, model):
        return f"{self.name}:{view_name}"


class FailingRenderer(ViewRenderer):
    def render(self, view_name, model):
        raise RuntimeError("template exploded")


class TestModel:
    """Test the model attribute container."""

    def test_add_and_merge_attributes(self):
        model = Model(name="Ada")
        model.add_attribute("age", 36).add_all_attributes({"city": "London"})
        model.merge_attributes({"name": "Grace", "lang": "en"})
        assert model.as_dict() == {"name": "Ada", "age": 36, "city": "London", "lang": "en"}
        assert model.contains_attribute("lang")
        assert model["age"] == 36
        assert len(model) == 4

    def test_view_collects_model(self):
        view = View("users/show", {"id": 1}, verbose=True)
        assert view.name == "users/show"
        assert view.model.as_dict() == {"id": 1, "verbose": True}


class TestViewRendererRegistry:
    """Test pattern registration and resolution."""

    def test_first_matching_pattern_wins(self, views):
        """Both patterns match; the one registered first is selected."""
        first = NamedRenderer("first")
        second = NamedRenderer("second")
        views.register("/admin/.*", first)
        views.register("/.*", second)
        assert views.resolve("/admin/users") is first
        assert views.resolve("/users") is second

    def test_pattern_must_match_whole_name(self, views):
        views.register("/public/.*", NamedRenderer("public"))
        views.register("/admin/.*", NamedRenderer("admin"))
        assert views.resolve("/admin/users").name == "admin"
        assert views.resolve("/other") is None
        assert views.resolve("x/admin/users") is None

    def test_provider_is_called_lazily_once(self, views):
        calls = []

        def provider():
            calls.append(1)
            return NamedRenderer("lazy")

        views.register(".*", provider)
        assert calls == []
        assert views.resolve("a") is views.resolve("b")
        assert calls == [1]

    def test_renderer_class_decorator(self, views):
        @views.renders("greet/.*")
        class Greeter(ViewRenderer):
            def render(self, view_name, model):
                return f"Hello {model['name']}"

        assert views.render("greet/one", {"name": "Ada"}) == "Hello Ada"

    def test_render_writes_to_response(self, views, response):
        views.register(".*", NamedRenderer("r"))
        assert views.render("home", response=response) == "r:home"
        assert response.body == "r:home"

    def test_render_without_renderer_raises(self, views):
        with pytest.raises(NoViewRendererError) as exc_info:
            views.render("missing")
        assert exc_info.value.view_name == "missing"

    def test_renderer_failure_is_wrapped(self, views):
        views.register(".*", FailingRenderer())
        with pytest.raises(ViewRenderingError) as exc_info:
            views.render("home")
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert isinstance(exc_info.value.original_exception, RuntimeError)

    def test_frozen_registry_rejects_registration(self, views):
        views.freeze()
        with pytest.raises(RegistryFrozenError):
            views.register(".*", NamedRenderer("late"))

    def test_invalid_renderer_is_rejected(self, views):
        with pytest.raises(TypeError):
            views.register(".*", "not a renderer")


class TestBasicViewRenderer:
    """Test dispatching views to marked methods."""

    def test_dispatch_by_view_name(self, views):
        class Pages(BasicViewRenderer):
            @render_for("pages/home", "pages/index")
            def home(self, model):
                return f"home {model.get('user', 'anonymous')}"

            @render_for("pages/about")
            def about(self, model):
                return "about"

        pages = Pages()
        assert sorted(pages.view_names) == ["pages/about", "pages/home", "pages/index"]
        views.register("pages/.*", pages)
        assert views.render("pages/index", {"user": "ada"}) == "home ada"
        assert views.render("pages/about") == "about"

    def test_unknown_view_has_no_renderer(self, views):
        class Pages(BasicViewRenderer):
            @render_for("pages/home")
            def home(self, model):
                return "home"

        views.register("pages/.*", Pages())
        with pytest.raises(NoViewRendererError) as exc_info:
            views.render("pages/missing")
        assert exc_info.value.view_name == "pages/missing"


class TestJinjaViewRenderer:
    """Test template rendering."""

    def test_renders_template_with_suffix(self, views):
        loader = DictLoader({"users/show.html": "<h1>{{ name }}</h1>"})
        views.register("users/.*", JinjaViewRenderer(loader=loader))
        assert views.render("users/show", Model(name="Ada")) == "<h1>Ada</h1>"

    def test_autoescape_is_on_by_default(self):
        renderer = JinjaViewRenderer(loader=DictLoader({"x.html": "{{ value }}"}))
        assert renderer.render("x", Model(value="<b>")) == "&lt;b&gt;"

    def test_unsafe_disables_autoescape(self):
        renderer = JinjaViewRenderer(loader=DictLoader({"x.html": "{{ value }}"}), unsafe=True)
        assert renderer.render("x", Model(value="<b>")) == "<b>"

    def test_templates_from_directory(self, tmp_path):
        (tmp_path / "hello.txt").write_text("Hello {{ who }}")
        renderer = JinjaViewRenderer(str(tmp_path), suffix=".txt")
        assert renderer.render("hello", Model(who="world")) == "Hello world"

    def test_missing_template_is_a_rendering_error(self, views):
        views.register(".*", JinjaViewRenderer(loader=DictLoader({})))
        with pytest.raises(ViewRenderingError):
            views.render("nope")

    def test_missing_template_directory(self, tmp_path):
        with pytest.raises(ValueError):
            JinjaViewRenderer(str(tmp_path / "does-not-exist"))

    def test_render_inline(self):
        assert render_inline("<p>{{ x }}</p>", x="<i>") == "<p>&lt;i&gt;</p>"
