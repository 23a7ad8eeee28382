"""
Tests for the step runner: idempotency, failure policies, retry, rollback.
"""

from pathlib import Path

import pytest

from netbox_installer.core.engine.lock import LockError, run_lock
from netbox_installer.core.engine.rollback import generate_rollback, run_rollback
from netbox_installer.core.engine.runner import StepRunner
from netbox_installer.core.models.context import SecretBundle
from netbox_installer.core.models.step import FailurePolicy, Step, StepError
from netbox_installer.core.reliability.retry import RetryPolicy, call_with_retry


class _Recorder:
    """Builds steps that log their predicate/action calls."""

    def __init__(self):
        self.calls: list[str] = []

    def step(
        self,
        name: str,
        satisfied: bool = False,
        fail: Exception | None = None,
        policy: FailurePolicy = FailurePolicy.ABORT,
        rollback: bool = False,
        retries: int = 0,
        produces: dict | None = None,
    ) -> Step:
        def check(ctx):
            self.calls.append(f"check:{name}")
            return satisfied

        def action(ctx):
            self.calls.append(f"run:{name}")
            if fail is not None:
                raise fail
            return produces

        def undo(ctx):
            self.calls.append(f"rollback:{name}")

        return Step(
            name,
            name,
            check,
            action,
            policy=policy,
            rollback=undo if rollback else None,
            retries=retries,
        )


# ── Ordering and idempotency ─────────────────────────────────────────


class TestRunnerOrdering:
    def test_runs_all_in_order(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("a"), rec.step("b"), rec.step("c")], context)
        assert result.ok
        assert result.completed == 3
        assert [c for c in rec.calls if c.startswith("run:")] == ["run:a", "run:b", "run:c"]
        assert context.completed == ["a", "b", "c"]

    def test_satisfied_step_is_skipped(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("a", satisfied=True), rec.step("b")], context)
        assert result.skipped == 1
        assert result.completed == 1
        assert "run:a" not in rec.calls
        assert result.record_for("a").status == "skipped"

    def test_all_satisfied_completes_nothing(self, context, runner):
        rec = _Recorder()
        steps = [rec.step(n, satisfied=True) for n in ("a", "b", "c")]
        result = runner.run(steps, context)
        assert result.ok
        assert result.completed == 0
        assert result.skipped == 3

    def test_listener_sees_every_visited_step(self, context):
        rec = _Recorder()
        seen: list[tuple[str, str]] = []
        runner = StepRunner(on_record=lambda step, record: seen.append((step.name, record.status)))
        runner.run([rec.step("a", satisfied=True), rec.step("b")], context)
        assert seen == [("a", "skipped"), ("b", "completed")]

    def test_ordinals(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("a"), rec.step("b")], context)
        assert [r.ordinal for r in result.records] == [1, 2]


# ── Failure policies ─────────────────────────────────────────────────


class TestRunnerFailures:
    def test_abort_stops_later_steps(self, context, runner):
        rec = _Recorder()
        steps = [rec.step("a"), rec.step("b", fail=StepError("boom")), rec.step("c")]
        result = runner.run(steps, context)

        assert not result.ok
        assert result.aborted_at == "b"
        assert result.fatal_error.ordinal == 2
        assert "boom" in result.fatal_error.error
        assert "check:c" not in rec.calls
        assert "run:c" not in rec.calls
        assert len(result.records) == 2

    def test_warn_continues(self, context, runner):
        rec = _Recorder()
        steps = [
            rec.step("a", fail=RuntimeError("meh"), policy=FailurePolicy.WARN),
            rec.step("b"),
        ]
        result = runner.run(steps, context)
        assert result.ok
        assert result.failed == 1
        assert result.completed == 1
        assert result.record_for("a").error == "meh"
        assert not result.record_for("a").fatal

    def test_predicate_exception_is_a_failure(self, context, runner):
        def bad_check(ctx):
            raise OSError("cannot stat")

        steps = [Step("a", "A", bad_check, lambda ctx: None), Step("b", "B", lambda c: False, lambda c: None)]
        result = runner.run(steps, context)
        assert result.aborted_at == "a"
        assert "idempotency check failed" in result.fatal_error.error
        assert result.record_for("b") is None

    def test_predicate_exception_under_warn(self, context, runner):
        def bad_check(ctx):
            raise OSError("cannot stat")

        steps = [
            Step("a", "A", bad_check, lambda ctx: None, policy=FailurePolicy.WARN),
            Step("b", "B", lambda c: False, lambda c: None),
        ]
        result = runner.run(steps, context)
        assert result.ok
        assert result.record_for("b").status == "completed"

    def test_exception_without_message(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("a", fail=KeyError())], context)
        assert result.fatal_error.error == "KeyError"

    def test_str_of_failure_names_step(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("download", fail=StepError("404"))], context)
        assert str(result.fatal_error) == "step 'download' failed: 404"

    def test_to_dict(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("a"), rec.step("b", fail=StepError("x"))], context)
        data = result.to_dict()
        assert data["ok"] is False
        assert data["fatal_error"]["step"] == "b"
        assert [r["status"] for r in data["records"]] == ["completed", "failed"]


# ── Produced values ──────────────────────────────────────────────────


class TestContextMerge:
    def test_values_merged(self, context, runner):
        rec = _Recorder()
        runner.run([rec.step("a", produces={"installed_packages": ["git"]})], context)
        assert context.values["installed_packages"] == ["git"]

    def test_secrets_set_once(self, context, runner):
        bundle = SecretBundle(db_password="p", secret_key="k")
        rec = _Recorder()
        runner.run([rec.step("a", produces={"secrets": bundle})], context)
        assert context.secrets == bundle

    def test_different_secrets_refused(self, context, runner):
        context.secrets = SecretBundle(db_password="p", secret_key="k")
        other = SecretBundle(db_password="q", secret_key="k")
        rec = _Recorder()
        result = runner.run([rec.step("a", produces={"secrets": other})], context)
        assert result.aborted_at == "a"
        assert context.secrets.db_password == "p"


# ── Retry ────────────────────────────────────────────────────────────


class TestRetry:
    def test_delay_grows_and_caps(self):
        policy = RetryPolicy(retries=5, base_delay=1.0, max_delay=4.0, jitter=0.0)
        assert [policy.delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 4.0]

    def test_jitter_bounded(self):
        policy = RetryPolicy(base_delay=2.0, jitter=0.5)
        for _ in range(20):
            assert 2.0 <= policy.delay(1) <= 3.0

    def test_succeeds_after_transient_failures(self):
        attempts = iter([RuntimeError("1"), RuntimeError("2"), None])
        sleeps: list[float] = []

        def flaky():
            exc = next(attempts)
            if exc:
                raise exc
            return "ok"

        result, count = call_with_retry(
            flaky, RetryPolicy(retries=2, jitter=0.0), sleep=sleeps.append
        )
        assert (result, count) == ("ok", 3)
        assert sleeps == [2.0, 4.0]

    def test_exhausted_reraises_last(self):
        def always():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError, match="down"):
            call_with_retry(always, RetryPolicy(retries=1), sleep=lambda _: None)

    def test_no_retries_means_one_attempt(self):
        calls = []

        def once():
            calls.append(1)
            raise RuntimeError("x")

        with pytest.raises(RuntimeError):
            call_with_retry(once, RetryPolicy(retries=0), sleep=lambda _: None)
        assert len(calls) == 1

    def test_runner_retries_declared_steps(self, context, runner):
        outcomes = iter([RuntimeError("mirror down"), None])

        def action(ctx):
            exc = next(outcomes)
            if exc:
                raise exc

        result = runner.run([Step("net", "Net", lambda c: False, action, retries=2)], context)
        assert result.ok
        assert result.record_for("net").attempts == 2

    def test_runner_records_attempts_on_exhaustion(self, context, runner):
        rec = _Recorder()
        result = runner.run([rec.step("net", fail=RuntimeError("down"), retries=2)], context)
        assert result.record_for("net").attempts == 3
        assert rec.calls.count("run:net") == 3


# ── Rollback ─────────────────────────────────────────────────────────


class TestRollback:
    def test_reverse_order_includes_failing_step(self, context, runner):
        rec = _Recorder()
        steps = [
            rec.step("a", rollback=True),
            rec.step("b"),
            rec.step("c", rollback=True),
            rec.step("d", fail=StepError("x"), rollback=True),
            rec.step("e", rollback=True),
        ]
        runner.run(steps, context)
        assert [c for c in rec.calls if c.startswith("rollback:")] == [
            "rollback:d",
            "rollback:c",
            "rollback:a",
        ]

    def test_skipped_steps_not_rolled_back(self, context, runner):
        rec = _Recorder()
        steps = [
            rec.step("a", satisfied=True, rollback=True),
            rec.step("b", fail=StepError("x")),
        ]
        runner.run(steps, context)
        assert "rollback:a" not in rec.calls

    def test_no_rollback_on_success_or_warn(self, context, runner):
        rec = _Recorder()
        steps = [
            rec.step("a", rollback=True),
            rec.step("b", fail=StepError("x"), policy=FailurePolicy.WARN, rollback=True),
        ]
        runner.run(steps, context)
        assert not [c for c in rec.calls if c.startswith("rollback:")]

    def test_rollback_errors_collected(self, context):
        def broken(ctx):
            raise RuntimeError("cannot stop")

        seen = []
        touched = [
            Step("a", "A", lambda c: False, lambda c: None, rollback=lambda c: seen.append("a")),
            Step("b", "B", lambda c: False, lambda c: None, rollback=broken),
        ]
        errors = run_rollback(touched, context)
        assert errors == ["b: cannot stop"]
        assert seen == ["a"]

    def test_generate_rollback_filters(self):
        with_hook = Step("a", "A", lambda c: False, lambda c: None, rollback=lambda c: None)
        without = Step("b", "B", lambda c: False, lambda c: None)
        assert generate_rollback([with_hook, without]) == [with_hook]


# ── Lock ─────────────────────────────────────────────────────────────


class TestRunLock:
    def test_acquire_and_release(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        with run_lock(path):
            assert "pid=" in path.read_text()
        with run_lock(path):
            pass

    def test_second_holder_refused(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        with run_lock(path):
            with pytest.raises(LockError):
                with run_lock(path):
                    pass

    def test_creates_parent(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "run.lock"
        with run_lock(path):
            assert path.exists()

    def test_unopenable_lock_file(self, tmp_path: Path):
        # A directory in place of the lock file cannot be opened for append
        with pytest.raises(LockError, match="Cannot open run lock"):
            with run_lock(tmp_path):
                pass
