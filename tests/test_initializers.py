"""
Tests for initializer declaration, ordering and boot.
"""

import pytest

from enginekit import Engine, Initializer, InitializerCollection, InitializerOrderError
from enginekit.core.initializers import declare


def _noop(owner, app):
    pass


def _positions(app):
    return [(i.owner_name, i.name) for i in app.initializers.tsort()]


class TestInitializerCollection:
    """Tests for topological sorting of initializers."""

    def test_declaration_order_is_kept(self):
        """Without constraints initializers keep their declaration order."""
        steps = []
        declare(steps, "first", _noop)
        declare(steps, "second", _noop)
        declare(steps, "third", _noop)

        assert InitializerCollection(steps).names() == ["first", "second", "third"]

    def test_implicit_after_previous(self):
        """Each declared initializer runs after the owner's previous one."""
        steps = []
        declare(steps, "first", _noop)
        second = declare(steps, "second", _noop)

        assert second.after == "first"

    def test_before_constraint(self):
        """An initializer can move itself before another one."""
        steps = [
            Initializer("a", _noop),
            Initializer("b", _noop, after="a"),
            Initializer("early", _noop, before="a"),
        ]

        assert InitializerCollection(steps).names() == ["early", "a", "b"]

    def test_after_constraint_applies_to_every_owner(self):
        """after= waits for every initializer carrying that name."""
        steps = [
            Initializer("late", _noop, owner="x", after="setup"),
            Initializer("setup", _noop, owner="one"),
            Initializer("setup", _noop, owner="two"),
        ]

        ordered = InitializerCollection(steps).tsort()

        assert [i.name for i in ordered] == ["setup", "setup", "late"]

    def test_cycle_is_fatal(self):
        """Contradictory constraints raise InitializerOrderError."""
        steps = [
            Initializer("a", _noop, after="b"),
            Initializer("b", _noop, after="a"),
        ]

        with pytest.raises(InitializerOrderError, match="cycle"):
            InitializerCollection(steps).tsort()

    def test_unknown_anchor_is_fatal(self):
        """Referring to an initializer nobody declared raises."""
        steps = [Initializer("a", _noop, after="missing")]

        with pytest.raises(InitializerOrderError, match="missing"):
            InitializerCollection(steps).tsort()

    def test_duplicate_name_per_owner_rejected(self):
        """An owner cannot declare the same initializer twice."""
        steps = []
        declare(steps, "setup", _noop)

        with pytest.raises(InitializerOrderError):
            declare(steps, "setup", _noop)

    def test_invalid_name_rejected(self):
        """Initializer names must be identifiers."""
        with pytest.raises(ValueError):
            Initializer("has spaces", _noop)

    def test_run_all(self):
        """run_all() calls each block with its owner and the app."""
        calls = []
        steps = []
        declare(steps, "record", lambda owner, app: calls.append((owner, app)), owner="engine")

        InitializerCollection(steps).run_all("app")

        assert calls == [("engine", "app")]


class TestApplicationBoot:
    """Tests for the boot sequence of an application with engines."""

    def test_builtin_order(self, app, bukkits):
        """Bootstrap runs first, then the application, engines, and finisher."""
        positions = _positions(app)

        assert positions[:3] == [
            ("app_template", "load_environment_hook"),
            ("app_template", "initialize_logger"),
            ("app_template", "register_namespaces"),
        ]
        assert positions[-4:] == [
            ("app_template", "load_routes"),
            ("app_template", "finalize_configuration"),
            ("app_template", "build_middleware_stack"),
            ("app_template", "finisher_hook"),
        ]
        assert positions.index(("bukkits", "engines_blank_point")) < positions.index(("app_template", "load_routes"))

    def test_engine_initializer_after_blank_point(self, app, bukkits):
        """An engine initializer runs after every engine loaded its config initializers."""
        calls = []

        @bukkits.initializer("dummy_initializer")
        def dummy_initializer(engine, application):
            calls.append(engine)

        positions = _positions(app)
        index = positions.index(("bukkits", "dummy_initializer"))
        assert index > positions.index(("app_template", "load_config_initializers"))
        assert index > positions.index(("bukkits", "engines_blank_point"))
        assert index < positions.index(("app_template", "build_middleware_stack"))

        app.boot()
        assert calls == [bukkits]
        assert app.booted is True

    def test_after_blank_point_waits_for_every_engine(self, app, bukkits, tmp_path):
        """after="engines_blank_point" waits for the blank point of every component."""
        calls = []
        (tmp_path / "blog").mkdir()
        blog = app.add_engine(Engine("blog", root=tmp_path / "blog"))

        @blog.initializer("blog_setup", after="engines_blank_point")
        def blog_setup(engine, application):
            calls.append(engine)

        positions = _positions(app)
        index = positions.index(("blog", "blog_setup"))
        for owner in ("app_template", "bukkits", "blog"):
            assert index > positions.index((owner, "engines_blank_point"))
        assert index > positions.index(("app_template", "load_config_initializers"))
        assert index < positions.index(("app_template", "build_middleware_stack"))

        app.boot()
        assert calls == [blog]

    def test_engine_initializer_after_application_step(self, app, bukkits):
        """after= can reference an application initializer."""
        order = []

        @app.initializer("app_step")
        def app_step(owner, application):
            order.append("app")

        @bukkits.initializer("engine_step", after="app_step")
        def engine_step(owner, application):
            order.append("engine")

        app.boot()
        assert order == ["app", "engine"]

    def test_cycle_prevents_boot(self, app, bukkits):
        """An engine initializer that must run before bootstrap cannot be satisfied."""
        bukkits.initializer("too_early", before="load_environment_hook")(_noop)

        with pytest.raises(InitializerOrderError):
            app.boot()
        assert app.booted is False

    def test_unknown_anchor_prevents_boot(self, app, bukkits):
        """A dangling reference stops the boot."""
        bukkits.initializer("orphan", after="nonexistent")(_noop)

        with pytest.raises(InitializerOrderError):
            app.boot()
        assert app.booted is False

    def test_boot_is_idempotent(self, app, bukkits):
        """Booting twice runs initializers once."""
        calls = []
        bukkits.initializer("count")(lambda engine, application: calls.append(1))

        app.boot()
        app.boot()

        assert calls == [1]

    def test_engines_cannot_be_added_after_boot(self, app):
        """The engine list is fixed once the application booted."""
        app.boot()

        with pytest.raises(RuntimeError):
            app.add_engine(Engine("late"))

    def test_duplicate_engine_names_rejected(self, app, bukkits):
        """Two engines cannot share a name."""
        with pytest.raises(ValueError):
            app.add_engine(Engine("bukkits"))

    def test_after_initialize_runs_in_finisher(self, app, bukkits):
        """after_initialize blocks run once everything else has."""
        seen = []
        bukkits.config.after_initialize(lambda application: seen.append(application.booted))

        app.boot()

        assert seen == [False]
