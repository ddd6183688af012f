"""Tests for HookPipeline - pre/post tool hooks and partial callbacks."""

import pytest

from cade.core.hooks import POST_TOOL_USE, PRE_TOOL_USE, HookPipeline
from conftest import read_records

pytestmark = pytest.mark.unit


class TestRegistration:

    def test_registration_order_preserved(self):
        def first(name, data):
            pass

        def second(name, data):
            pass

        pipeline = HookPipeline()
        pipeline.register_pre(first)
        pipeline.register_post(second)
        pipeline.register_pre(second)
        assert pipeline.pre_hooks == [first, second]
        assert pipeline.post_hooks == [second]

    def test_with_callbacks_leaves_original_untouched(self):
        pipeline = HookPipeline()
        copy = pipeline.with_callbacks(lambda n, i: None, lambda t: None)
        assert len(copy.pre_hooks) == 1
        assert len(copy.partial_hooks) == 1
        assert pipeline.pre_hooks == []
        assert pipeline.partial_hooks == []

    def test_with_callbacks_appends_after_registered(self):
        def registered(name, data):
            pass

        def per_call(name, data):
            pass

        pipeline = HookPipeline(pre_hooks=[registered])
        assert pipeline.with_callbacks(on_tool_use=per_call).pre_hooks == [registered, per_call]


class TestExecution:

    @pytest.mark.asyncio
    async def test_hooks_run_in_order(self):
        calls = []
        pipeline = HookPipeline()
        pipeline.register_pre(lambda name, data: calls.append(("a", name, data)))
        pipeline.register_pre(lambda name, data: calls.append(("b", name, data)))

        failures = await pipeline.run_pre("write_file", {"path": "a.txt"})

        assert failures == 0
        assert calls == [
            ("a", "write_file", {"path": "a.txt"}),
            ("b", "write_file", {"path": "a.txt"}),
        ]

    @pytest.mark.asyncio
    async def test_async_hooks_awaited(self):
        calls = []

        async def hook(name, output):
            calls.append(output)

        pipeline = HookPipeline(post_hooks=[hook])
        await pipeline.run_post("Read", "contents")
        assert calls == ["contents"]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_later_hooks(self):
        calls = []

        def broken(name, data):
            raise RuntimeError("hook exploded")

        pipeline = HookPipeline(pre_hooks=[broken, lambda n, d: calls.append(n)])
        failures = await pipeline.run_pre("Bash", {"command": "ls"})

        assert failures == 1
        assert calls == ["Bash"]

    @pytest.mark.asyncio
    async def test_partial_hooks_receive_text(self):
        seen = []
        pipeline = HookPipeline(partial_hooks=[seen.append])
        assert await pipeline.run_partial("thinking out loud") == 0
        assert seen == ["thinking out loud"]

    @pytest.mark.asyncio
    async def test_no_hooks_is_noop(self):
        assert await HookPipeline().run_post("Read", "x") == 0


class TestAuditing:

    @pytest.mark.asyncio
    async def test_stage_record_written_even_without_hooks(self, audit_log):
        await HookPipeline().run_pre("Read", {}, audit_log, session_id="s1")
        audit_log.flush()

        records = read_records(audit_log.path)
        assert len(records) == 1
        assert records[0]["event_type"] == "hook"
        assert records[0]["message_type"] == PRE_TOOL_USE
        assert records[0]["data"] == {"stage": PRE_TOOL_USE, "tool": "Read", "hooks": 0}
        assert records[0]["session_id"] == "s1"

    @pytest.mark.asyncio
    async def test_hook_failure_audited(self, audit_log):
        def broken(name, output):
            raise ValueError("bad output")

        await HookPipeline(post_hooks=[broken]).run_post("Read", "x", audit_log)
        audit_log.flush()

        records = read_records(audit_log.path)
        assert [r["event_type"] for r in records] == ["hook", "hook_error"]
        error = records[1]["data"]
        assert error["stage"] == POST_TOOL_USE
        assert error["tool"] == "Read"
        assert error["error"] == "bad output"
        assert error["error_type"] == "ValueError"
        assert "broken" in error["hook"]

    @pytest.mark.asyncio
    async def test_partial_hooks_write_no_stage_record(self, audit_log):
        await HookPipeline(partial_hooks=[lambda text: None]).run_partial("hi", audit_log)
        audit_log.flush()
        assert read_records(audit_log.path) == []
