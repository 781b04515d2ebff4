"""
Tests for engine loading, namespaces, helpers and seeds.
"""

import logging
import types

import pytest
from fastapi.testclient import TestClient

from enginekit import ConfigurationError, Engine


ISOLATED_CONTROLLERS = """
    from enginekit import Controller


    @engine.model
    class Post:
        def to_param(self):
            return "1"


    class FooController(Controller):
        def index(self):
            return self.render(inline="{{ help_the_engine() }}")

        def show(self):
            return self.render(text=self.helpers.foo_path())

        def from_app(self):
            return self.render(inline="{{ bar_path is defined or something is defined }}")

        def routes_helpers_in_view(self):
            return self.render(inline="{{ foo_path() }}, {{ main_app.bar_path() }}")

        def polymorphic_path_without_namespace(self):
            return self.render(text=self.helpers.polymorphic_path(Post()))


    class PostsController(Controller):
        def new(self):
            return self.render(post=Post())
"""

ISOLATED_ROUTES = """
    routes.get("/foo", "foo#index", name="foo")
    routes.get("/foo/show", "foo#show")
    routes.get("/from_app", "foo#from_app")
    routes.get("/routes_helpers_in_view", "foo#routes_helpers_in_view")
    routes.get("/polymorphic_path_without_namespace", "foo#polymorphic_path_without_namespace")
    routes.resources("posts")
"""

HOST_ROUTES = """
    routes.get("/bar", lambda request: "bar", name="bar")
    routes.mount(app.engine("bukkits"), at="/bukkits")
"""


class TestEngineBasics:
    """Tests for engine construction."""

    def test_engine_class_has_no_config(self):
        """Configuration belongs to engine instances, not the class."""
        assert not hasattr(Engine, "config")
        assert Engine("bukkits").config is not None

    def test_default_asset_path(self):
        """An engine serves assets under /<name>_engine by default."""
        assert Engine("bukkits").config.asset_path == "/bukkits_engine%s"

    def test_invalid_name(self):
        """Engine names are lowercase identifiers."""
        with pytest.raises(ValueError):
            Engine("Bukkits")

    def test_paths_follow_root(self, plugin_tree):
        """Paths are resolved under the engine root and can be overridden."""
        engine = Engine("bukkits", root=plugin_tree.root)
        engine.path_overrides["views"] = "templates"

        assert engine.paths["routes"] == plugin_tree.root.resolve() / "config" / "routes.py"
        assert engine.paths["views"] == plugin_tree.root.resolve() / "templates"
        assert Engine("rootless").paths == {}

    def test_engine_belongs_to_one_application(self, make_app, bukkits):
        """An engine cannot be added to a second application."""
        other = make_app()

        with pytest.raises(ValueError):
            other.add_engine(bukkits)

    def test_adding_engine_resets_cached_views(self, app, app_tree, plugin_tree):
        """A shared engine sees the application's views even if it rendered before joining."""
        engine = Engine("bukkits", root=plugin_tree.root)
        engine.view_environment()
        app_tree.write("app/views/layouts/shared.html", "host view")

        app.add_engine(engine)

        assert engine.view_environment().get_template("layouts/shared.html").render() == "host view"


class TestLoading:
    """Tests for files an engine loads during boot."""

    def test_environment_file(self, app, bukkits, plugin_tree):
        """config/environments/<environment>.py runs against the engine config."""
        plugin_tree.write("config/environments/development.py", """
            config.environment_loaded = True
        """)

        app.boot()

        assert bukkits.config.environment_loaded is True

    def test_config_initializers(self, app, bukkits, plugin_tree):
        """Every script under config/initializers runs in name order."""
        plugin_tree.write("config/initializers/a_first.py", """
            config.order = ["a"]
        """)
        plugin_tree.write("config/initializers/b_second.py", """
            config.order = config.order + ["b"]
        """)

        app.boot()

        assert bukkits.config.order == ["a", "b"]

    def test_plugins(self, app, bukkits, plugin_tree):
        """Plugins under vendor/plugins are loaded for their engine."""
        plugin_tree.write("vendor/plugins/yaffle/init.py", """
            config.yaffle_loaded = plugin_name
        """)

        app.boot()

        assert bukkits.config.yaffle_loaded == "yaffle"

    def test_duplicate_plugin_is_skipped_with_warning(self, app, bukkits, app_tree, plugin_tree, caplog):
        """A plugin already loaded by the application is not loaded again."""
        app_tree.write("vendor/plugins/yaffle/init.py", """
            config.app_yaffle_loaded = True
        """)
        plugin_tree.write("vendor/plugins/yaffle/init.py", """
            config.engine_yaffle_loaded = True
        """)
        caplog.set_level(logging.WARNING, logger="enginekit.services.plugins")

        app.boot()

        assert app.config.app_yaffle_loaded is True
        assert not hasattr(bukkits.config, "engine_yaffle_loaded")
        assert "already loaded by 'app_template'" in caplog.text

    def test_failing_script_propagates(self, app, bukkits, plugin_tree):
        """Errors in engine scripts stop the boot."""
        plugin_tree.write("config/initializers/broken.py", """
            raise RuntimeError("broken initializer")
        """)

        with pytest.raises(RuntimeError, match="broken initializer"):
            app.boot()
        assert app.booted is False


class TestSeeds:
    """Tests for per-engine seed loading."""

    def test_seeds_are_scoped(self, app, bukkits, app_tree, plugin_tree):
        """Loading the application's seeds leaves engine seeds alone."""
        app_tree.write("db/seeds.py", """
            config.app_seeds_loaded = True
        """)
        plugin_tree.write("db/seeds.py", """
            config.bukkits_seeds_loaded = True
        """)
        app.boot()

        assert app.load_seed() is True
        assert app.config.app_seeds_loaded is True
        with pytest.raises(ConfigurationError):
            bukkits.config.bukkits_seeds_loaded

        assert bukkits.load_seed() is True
        assert bukkits.config.bukkits_seeds_loaded is True

    def test_missing_seed_file(self, app):
        """Without db/seeds.py nothing is loaded."""
        assert app.load_seed() is False


class TestSharedEngine:
    """Tests for helpers of an engine that is not isolated."""

    @pytest.fixture
    def shared_client(self, app, bukkits, app_tree, plugin_tree):
        app_tree.write("app/helpers/some_helper.py", """
            def something():
                return "Something... Something... Something..."
        """)
        plugin_tree.write("app/helpers/bar_helper.py", """
            def bar():
                return "A bar."
        """)
        plugin_tree.write("app/controllers/foo_controller.py", """
            from enginekit import Controller


            class FooController(Controller):
                controller_name = "bukkits/foo"

                def index(self):
                    return self.render(inline="{{ something() }}")

                def show(self):
                    return self.render(text=self.helpers.foo_path())

                def bar(self):
                    return self.render(inline="{{ bar() }}")
        """)
        app_tree.write("config/routes.py", """
            routes.get("/foo", "bukkits/foo#index", name="foo")
            routes.get("/foo/show", "bukkits/foo#show")
            routes.get("/foo/bar", "bukkits/foo#bar")
        """)
        return TestClient(app)

    def test_application_helpers_available_in_engine(self, shared_client):
        """Engine controllers see the application's helpers."""
        assert shared_client.get("/foo").text == "Something... Something... Something..."

    def test_application_route_helpers_in_engine(self, shared_client):
        """Engine controllers see the serving route set's helpers."""
        assert shared_client.get("/foo/show").text == "/foo"

    def test_engine_helpers_available(self, shared_client):
        """Engine helpers are shared with the application."""
        assert shared_client.get("/foo/bar").text == "A bar."


class TestIsolatedEngine:
    """Tests for an engine isolated in its own namespace."""

    @pytest.fixture
    def isolated_client(self, app, isolated_bukkits, app_tree, plugin_tree):
        app_tree.write("app/helpers/some_helper.py", """
            def something():
                return "Something... Something... Something..."
        """)
        app_tree.write("config/routes.py", HOST_ROUTES)
        plugin_tree.write("app/helpers/engine_helper.py", """
            def help_the_engine():
                return "Helped."
        """)
        plugin_tree.write("app/controllers/foo_controller.py", ISOLATED_CONTROLLERS)
        plugin_tree.write("app/views/posts/new.html", """
            <form>{{ text_field(post, "title") }}</form>
        """)
        plugin_tree.write("config/routes.py", ISOLATED_ROUTES)
        return TestClient(app)

    def test_namespace_settings(self, isolated_bukkits):
        """Isolation sets the namespace and the table name prefix."""
        assert isolated_bukkits.isolated is True
        assert isolated_bukkits.namespace == "bukkits"
        assert isolated_bukkits.table_name_prefix == "bukkits_"

    def test_models_use_namespace(self, isolated_client, isolated_bukkits, app):
        """Models get the prefixed table name and an unprefixed param key."""
        app.boot()
        post = isolated_bukkits.models["Post"]

        assert post.__tablename__ == "bukkits_posts"
        assert post.model_name.param_key == "post"
        assert post.model_name.route_key == "posts"

    def test_application_helpers_not_visible(self, isolated_client):
        """Application helpers and routes stay out of isolated views."""
        assert isolated_client.get("/bukkits/from_app").text == "False"

    def test_own_helpers(self, isolated_client):
        """Isolated views see the engine's own helpers."""
        assert isolated_client.get("/bukkits/foo").text == "Helped."

    def test_own_route_helpers(self, isolated_client):
        """Route helpers are prefixed with the mount point."""
        assert isolated_client.get("/bukkits/foo/show").text == "/bukkits/foo"

    def test_main_app_route_helpers(self, isolated_client):
        """main_app reaches the application's routes."""
        response = isolated_client.get("/bukkits/routes_helpers_in_view")

        assert response.text == "/bukkits/foo, /bar"

    def test_polymorphic_path_without_namespace(self, isolated_client):
        """Record paths drop the namespace inside the engine."""
        response = isolated_client.get("/bukkits/polymorphic_path_without_namespace")

        assert response.text == "/bukkits/posts/1"

    def test_form_field_names_without_namespace(self, isolated_client):
        """Form fields use the unprefixed param key."""
        response = isolated_client.get("/bukkits/posts/new")

        assert response.status_code == 200
        assert 'name="post[title]"' in response.text
        assert 'id="post_title"' in response.text

    def test_namespace_is_registered(self, isolated_client, isolated_bukkits, app):
        """Boot records which engine owns a namespace."""
        app.boot()

        assert app.namespace_owner("bukkits") is isolated_bukkits

    def test_isolating_module_twice_keeps_first_engine(self, app):
        """A module claimed by an engine stays with it."""
        module = types.ModuleType("app_template")
        engine = app.add_engine(Engine("app_template_engine", namespace=module))
        app.isolate_namespace(module)

        assert module._engine is engine
        assert module.table_name_prefix == "app_template_"
