"""Tests for core.fallback.first_success."""

from core.fallback import first_success


class TestFirstSuccess:
    def test_first_truthy_wins(self):
        calls = []

        def strategy(name, value):
            def run():
                calls.append(name)
                return value
            return run

        name, value = first_success([
            ("a", strategy("a", [1])),
            ("b", strategy("b", [2])),
        ])
        assert (name, value) == ("a", [1])
        assert calls == ["a"]

    def test_empty_result_moves_on(self):
        name, value = first_success([("a", lambda: []), ("b", lambda: ["x"])])
        assert (name, value) == ("b", ["x"])

    def test_exception_moves_on_and_reports(self):
        failures = []

        def boom():
            raise RuntimeError("nope")

        name, value = first_success(
            [("a", boom), ("b", lambda: []), ("c", lambda: "ok")],
            on_failure=lambda n, reason: failures.append((n, reason)),
        )
        assert (name, value) == ("c", "ok")
        assert failures[0][0] == "a"
        assert isinstance(failures[0][1], RuntimeError)
        assert failures[1] == ("b", None)

    def test_all_fail_returns_default(self):
        def boom():
            raise ValueError("x")

        assert first_success([("a", boom), ("b", lambda: None)], default=[]) == (None, [])

    def test_custom_accept(self):
        name, value = first_success([("a", lambda: 0), ("b", lambda: 5)], accept=lambda v: v is not None)
        assert (name, value) == ("a", 0)

    def test_no_strategies(self):
        assert first_success([], default="d") == (None, "d")
