"""
End-to-end tests for the application pipeline.
"""

import enum
import json
from typing import Annotated, List

import pytest
from jinja2 import DictLoader
from pydantic import BaseModel

from mvcmachine import (
    AttributeAccessor,
    Body,
    Cache,
    CacheCapture,
    CacheControl,
    Header,
    HTTPMethod,
    InMemoryCache,
    JinjaViewRenderer,
    MvcApplication,
    MvcConfig,
    Path,
    Redirect,
    Request,
    ResponseAction,
    SessionAttribute,
    View,
)
from mvcmachine.exceptions import (
    ConfigurationError,
    InvalidValueError,
    NoSuchPathVariableError,
    NoViewRendererError,
    RegistryFrozenError,
    UnreachableHandlerError,
)


class Status(enum.Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


class NewUser(BaseModel):
    name: str
    age: int


class UserNotFound(Exception):
    pass


def get(target, **kwargs):
    return Request.from_target(HTTPMethod.GET, target, **kwargs)


class TestRouting:
    """Test routing and argument binding through the application."""

    @pytest.fixture
    def app(self):
        app = MvcApplication()

        @app.get("/users/{id}")
        def show_user(id: int, status: Status = Status.ACTIVE):
            return {"id": id, "status": status.value}

        @app.get("/search")
        def search(tags: List[str], limit: int = 10):
            return {"tags": tags, "limit": limit}

        @app.post("/users")
        def create_user(user: Annotated[NewUser, Body], agent: Annotated[str, Header("User-Agent", default="?")]):
            return user

        @app.get("/hello/{name}")
        def hello(name: str):
            return f"<p>Hello {name}</p>"

        return app

    def test_path_variable_is_converted(self, app):
        response = app.handle_request(get("/users/42?status=BLOCKED"))
        assert response.status_code == 200
        assert json.loads(response.body) == {"id": 42, "status": "blocked"}
        assert response.headers["Content-Type"] == "application/json"

    def test_query_array(self, app):
        response = app.handle_request(get("/search?tags=a&tags=b&limit=3"))
        assert json.loads(response.body) == {"tags": ["a", "b"], "limit": 3}

    def test_body_is_converted_to_model(self, app):
        request = Request.from_target(HTTPMethod.POST, "/users", body='{"name": "Ada", "age": 36}')
        response = app.handle_request(request)
        assert json.loads(response.body) == {"name": "Ada", "age": 36}

    def test_string_result_uses_default_content_type(self, app):
        response = app.handle_request(get("/hello/ada"))
        assert response.body == "<p>Hello ada</p>"
        assert response.headers["Content-Type"] == "text/html"
        assert response.finished

    def test_unknown_route_is_not_found(self, app):
        response = app.handle_request(get("/nowhere"))
        assert response.status_code == 404

    def test_unhandled_binding_error_propagates(self, app):
        with pytest.raises(InvalidValueError):
            app.handle_request(get("/users/abc"))

    def test_binding_error_reaches_exception_chain(self, app):
        @app.handles_exception(InvalidValueError)
        def bad_request(error, request, response):
            response.send_error(400, f"Bad value {error.value}")

        response = app.handle_request(get("/users/abc"))
        assert response.status_code == 400
        assert response.body == "Bad value abc"

    def test_undeclared_path_variable_fails_at_registration(self, app):
        with pytest.raises(NoSuchPathVariableError):

            @app.get("/posts/{slug}")
            def show_post(slug: Annotated[str, Path("id")]):
                return slug

    def test_custom_converter(self, app):
        class Money:
            def __init__(self, cents):
                self.cents = cents

        @app.converter(Money)
        def parse_money(value):
            units, _, cents = value.partition(".")
            return Money(int(units) * 100 + int(cents or 0))

        @app.get("/price")
        def price(amount: Money):
            return {"cents": amount.cents}

        assert json.loads(app.handle_request(get("/price?amount=3.25")).body) == {"cents": 325}

    def test_converter_failure_reaches_exception_chain(self, app):
        """Any exception raised while binding goes through the exception handlers."""

        class Sku:
            pass

        @app.converter(Sku)
        def parse_sku(value):
            raise LookupError(value)

        @app.get("/items/{sku}")
        def show_item(sku: Sku):
            return "never"

        @app.handles_exception(LookupError)
        def unknown_sku(error, request, response):
            response.send_error(404, f"Unknown item {error}")

        response = app.handle_request(get("/items/x"))
        assert response.status_code == 404
        assert response.body == "Unknown item x"

    def test_session_attributes(self, app):
        @app.get("/visits")
        def visits(user: Annotated[str, SessionAttribute], count: Annotated[AttributeAccessor, SessionAttribute("visits")]):
            count.set((count.get() or 0) + 1)
            return {"user": user, "visits": count.get()}

        request = get("/visits")
        request.session = {"user": "ada", "visits": 2}
        assert json.loads(app.handle_request(request).body) == {"user": "ada", "visits": 3}
        assert request.session["visits"] == 3


class TestOutcomes:
    """Test exception handling, redirects and actions through the application."""

    @pytest.fixture
    def app(self):
        app = MvcApplication()

        @app.handles_exception(UserNotFound)
        def not_found(error, request, response):
            response.send_error(404, "No such user")

        @app.get("/users/{id}")
        def show_user(id: int):
            raise UserNotFound(id)

        @app.get("/old")
        def old():
            return Redirect("/new", 301)

        @app.get("/guarded")
        def guarded():
            raise Redirect("/login").as_exception()

        @app.get("/teapot")
        def teapot():
            def action(request, response):
                response.status_code = 418
                response.write("short and stout")

            return ResponseAction(action)

        @app.get("/crash")
        def crash():
            raise RuntimeError("unexpected")

        return app

    def test_handled_exception(self, app):
        response = app.handle_request(get("/users/1"))
        assert response.status_code == 404
        assert response.body == "No such user"

    def test_returned_redirect(self, app):
        response = app.handle_request(get("/old"))
        assert response.status_code == 301
        assert response.headers["Location"] == "/new"

    def test_raised_redirect(self, app):
        response = app.handle_request(get("/guarded"))
        assert response.status_code == 302
        assert response.headers["Location"] == "/login"

    def test_response_action(self, app):
        response = app.handle_request(get("/teapot"))
        assert response.status_code == 418
        assert response.body == "short and stout"

    def test_unhandled_exception_propagates(self, app):
        with pytest.raises(RuntimeError, match="unexpected"):
            app.handle_request(get("/crash"))


class TestViews:
    """Test view rendering through the application."""

    def test_view_rendered_by_registered_renderer(self):
        app = MvcApplication()
        app.views.register("users/.*", JinjaViewRenderer(loader=DictLoader({"users/show.html": "<h1>{{ name }}</h1>"})))

        @app.get("/users/{name}")
        def show(name: str):
            return View("users/show", name=f"<b>{name}</b>")

        response = app.handle_request(get("/users/ada"))
        assert response.body == "<h1>&lt;b&gt;ada&lt;/b&gt;</h1>"
        assert response.headers["Content-Type"] == "text/html"

    def test_missing_renderer_reaches_exception_chain(self):
        app = MvcApplication()

        @app.handles_exception(NoViewRendererError)
        def missing_view(error, request, response):
            response.send_error(500, f"No view {error.view_name}")

        @app.get("/")
        def index():
            return View("index")

        response = app.handle_request(get("/"))
        assert response.status_code == 500
        assert response.body == "No view index"

    def test_template_directory_config(self, tmp_path):
        (tmp_path / "index.html").write_text("Hi {{ who }}")
        app = MvcApplication(MvcConfig(template_directory=str(tmp_path)))

        @app.get("/")
        def index():
            return View("index", who="there")

        assert app.handle_request(get("/")).body == "Hi there"


class TestLifecycle:
    """Test freezing registries."""

    def test_first_request_freezes(self):
        app = MvcApplication()

        @app.get("/")
        def index():
            return "ok"

        app.handle_request(get("/"))
        assert app.frozen
        with pytest.raises(RegistryFrozenError):
            app.converters.register(str, lambda value: value)
        with pytest.raises(RegistryFrozenError):

            @app.get("/late")
            def late():
                return "late"

    def test_freeze_can_be_disabled(self):
        app = MvcApplication(MvcConfig(freeze_on_first_request=False))

        @app.get("/")
        def index():
            return "ok"

        app.handle_request(get("/"))
        assert not app.frozen

        @app.handles_exception(KeyError)
        def missing(error, request, response):
            response.send_error(404)

    def test_unreachable_handler(self):
        app = MvcApplication()

        @app.handles_exception(LookupError)
        def lookup_failed(error, request, response):
            pass

        with pytest.raises(UnreachableHandlerError):

            @app.handles_exception(KeyError)
            def key_missing(error, request, response):
                pass


class TestDependenciesAndCache:
    """Test injection and response caching through the application."""

    def test_injected_dependency(self):
        app = MvcApplication()

        class Greeter:
            def greet(self, name):
                return f"Hello {name}"

        @app.dependency(Greeter, scope="session")
        def make_greeter():
            return Greeter()

        @app.get("/greet/{name}")
        def greet(name: str, greeter: Greeter, request: Request):
            return f"{greeter.greet(name)} from {request.path}"

        assert app.handle_request(get("/greet/ada")).body == "Hello ada from /greet/ada"

    def test_cached_response_is_served_again(self):
        app = MvcApplication(MvcConfig(cache_size=10))
        calls = []

        @app.get("/report")
        def report(capture: CacheCapture):
            calls.append(1)
            cache = capture.cache_request()
            assert isinstance(cache, InMemoryCache)
            assert capture.cache_request() is cache
            cache.set_expiration(60)
            return f"report #{len(calls)}"

        first = app.handle_request(get("/report"))
        second = app.handle_request(get("/report"))
        assert first.body == "report #1"
        assert second.body == "report #1"
        assert second.headers["Content-Type"] == "text/html"
        assert calls == [1]

    def test_cache_is_resolvable_dependency(self):
        app = MvcApplication(MvcConfig(cache_size=10))
        assert app.injector.is_bound(Cache)

    def test_error_response_is_not_replayed_from_cache(self):
        app = MvcApplication(MvcConfig(cache_size=10))
        calls = []

        @app.handles_exception(KeyError)
        def not_here(error, request, response):
            response.send_error(404, "Not here")

        @app.get("/gone")
        def gone(capture: CacheCapture):
            calls.append(1)
            capture.cache_request().set_expiration(60)
            raise KeyError("gone")

        first = app.handle_request(get("/gone"))
        second = app.handle_request(get("/gone"))
        assert (first.status_code, first.body) == (404, "Not here")
        assert (second.status_code, second.body) == (404, "Not here")
        assert calls == [1, 1]

    def test_declared_in_memory_cache(self):
        app = MvcApplication(MvcConfig(cache_size=10))
        calls = []

        @app.get("/greeting")
        @app.cache_in_memory(60, headers=["Accept-Language"])
        def greeting(language: Annotated[str, Header("Accept-Language", default="en")]):
            calls.append(language)
            return f"greeting in {language}"

        def fetch(language):
            return app.handle_request(get("/greeting", headers={"Accept-Language": language})).body

        assert fetch("en") == "greeting in en"
        assert fetch("fr") == "greeting in fr"
        assert fetch("en") == "greeting in en"
        assert fetch("fr") == "greeting in fr"
        assert calls == ["en", "fr"]

    def test_declared_in_memory_cache_skips_failures(self):
        app = MvcApplication(MvcConfig(cache_size=10))
        calls = []

        @app.handles_exception(LookupError)
        def missing(error, request, response):
            response.send_error(404)

        @app.cache_in_memory(60)
        @app.get("/flaky")
        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise LookupError("first call")
            return "found"

        assert app.handle_request(get("/flaky")).status_code == 404
        assert app.handle_request(get("/flaky")).body == "found"
        assert app.handle_request(get("/flaky")).body == "found"
        assert calls == [1, 1]

    def test_in_memory_cache_needs_cache_size(self):
        app = MvcApplication()

        @app.get("/report")
        @app.cache_in_memory(60)
        def report():
            return "report"

        with pytest.raises(ConfigurationError):
            app.handle_request(get("/report"))

    def test_client_cache_headers(self):
        app = MvcApplication()

        @app.get("/news")
        @app.cache_in_client(max_age=300, s_maxage=600, no_store=True, no_transform=True)
        def news():
            return "news"

        @app.get("/account")
        @app.cache_in_client(CacheControl(private="user", must_revalidate=True, extension="stale-if-error=60"))
        def account():
            return "account"

        news_response = app.handle_request(get("/news"))
        assert news_response.headers["Cache-Control"] == "public,no-store,no-transform,max-age=300,s-maxage=600"
        assert news_response.headers["Pragma"] == "public"

        account_response = app.handle_request(get("/account"))
        assert account_response.headers["Cache-Control"] == 'private="user",must-revalidate,stale-if-error=60'
        assert account_response.headers["Pragma"] == "private"
