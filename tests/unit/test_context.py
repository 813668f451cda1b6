"""Tests for execution contexts."""

from __future__ import annotations

from runtree.context import ContextId, palette_color


class TestExecContext:
    """Tests for fork / commit_state / prefix."""

    def test_fork_appends_id(self, make_context) -> None:
        child = make_context().fork("build", "blue").fork("0", "magenta")

        assert child.id_stack == (ContextId("build", "blue"), ContextId("0", "magenta"))
        assert child.path == "build/0"

    def test_fork_snapshots_state(self, make_context) -> None:
        parent = make_context(cwd="/work", env={"MODE": "dev"})
        child = parent.fork("a", "blue")

        child.commit_state("/work/sub", {"MODE": "ci"})

        assert parent.cwd == "/work"
        assert parent.env == {"MODE": "dev"}

    def test_siblings_isolated(self, make_context) -> None:
        parent = make_context(env={"MODE": "dev"})
        first = parent.fork("0", "blue")
        second = parent.fork("1", "blue")

        first.env["MODE"] = "changed"

        assert second.env == {"MODE": "dev"}

    def test_sequential_inherited_unless_given(self, make_context) -> None:
        parent = make_context(sequential=False)

        assert parent.fork("a", "blue").sequential is False
        assert parent.fork("b", "blue", sequential=True).sequential is True

    def test_shared_run_state(self, make_context) -> None:
        parent = make_context()

        assert parent.fork("a", "blue").run_state is parent.run_state

    def test_prefix(self, make_context) -> None:
        ctx = make_context().fork("build", "blue").fork("1", "green")

        assert ctx.prefix() == "build/1  "
        assert make_context().prefix() == "  "

    def test_prefix_with_time(self, make_context, options) -> None:
        ctx = make_context(options=options.with_overrides(show_time=True)).fork("x", "blue")

        prefix = ctx.prefix()

        assert prefix.startswith("[")
        assert prefix.endswith("x  ")


class TestPaletteColor:
    def test_wraps(self) -> None:
        assert palette_color(0) == "magenta"
        assert palette_color(5) == palette_color(0)
