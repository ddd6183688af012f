"""
Hook dispatch around tool execution.

Hooks run in registration order. A hook may be a plain function or return
an awaitable (which is awaited before the next hook runs). A hook that
raises is logged to the audit trail and skipped; tool tracking never
depends on hook success.
"""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from .audit import AuditLog

logger = logging.getLogger("cade.core.hooks")

PRE_TOOL_USE = "pre_tool_use"
POST_TOOL_USE = "post_tool_use"
PARTIAL_MESSAGE = "partial_message"

ToolHook = Callable[[str, Any], Any]
PartialHook = Callable[[str], Any]


class HookPipeline:
    """Ordered pre/post tool hooks plus partial-message callbacks."""

    def __init__(
        self,
        pre_hooks: Optional[list[ToolHook]] = None,
        post_hooks: Optional[list[ToolHook]] = None,
        partial_hooks: Optional[list[PartialHook]] = None,
    ):
        self.pre_hooks: list[ToolHook] = list(pre_hooks or [])
        self.post_hooks: list[ToolHook] = list(post_hooks or [])
        self.partial_hooks: list[PartialHook] = list(partial_hooks or [])

    def register_pre(self, hook: ToolHook) -> None:
        self.pre_hooks.append(hook)

    def register_post(self, hook: ToolHook) -> None:
        self.post_hooks.append(hook)

    def register_partial(self, hook: PartialHook) -> None:
        self.partial_hooks.append(hook)

    def with_callbacks(
        self,
        on_tool_use: Optional[ToolHook] = None,
        on_partial_message: Optional[PartialHook] = None,
    ) -> "HookPipeline":
        """Copy of this pipeline with per-call callbacks appended."""
        pipeline = HookPipeline(self.pre_hooks, self.post_hooks, self.partial_hooks)
        if on_tool_use is not None:
            pipeline.register_pre(on_tool_use)
        if on_partial_message is not None:
            pipeline.register_partial(on_partial_message)
        return pipeline

    async def run_pre(
        self,
        tool_name: str,
        tool_input: Any,
        audit: Optional["AuditLog"] = None,
        session_id: Optional[str] = None,
    ) -> int:
        """Fire pre-tool hooks. Returns the number of hooks that failed."""
        return await self._run(PRE_TOOL_USE, self.pre_hooks, (tool_name, tool_input),
                               tool_name, audit, session_id)

    async def run_post(
        self,
        tool_name: str,
        tool_output: Any,
        audit: Optional["AuditLog"] = None,
        session_id: Optional[str] = None,
    ) -> int:
        """Fire post-tool hooks. Returns the number of hooks that failed."""
        return await self._run(POST_TOOL_USE, self.post_hooks, (tool_name, tool_output),
                               tool_name, audit, session_id)

    async def run_partial(
        self,
        text: str,
        audit: Optional["AuditLog"] = None,
        session_id: Optional[str] = None,
    ) -> int:
        """Fire partial-message callbacks. No stage record is written for these."""
        failures = 0
        for hook in self.partial_hooks:
            if not await self._invoke(PARTIAL_MESSAGE, hook, (text,), None, audit, session_id):
                failures += 1
        return failures

    async def _run(
        self,
        stage: str,
        hooks: list[Callable[..., Any]],
        args: tuple,
        tool_name: str,
        audit: Optional["AuditLog"],
        session_id: Optional[str],
    ) -> int:
        if audit is not None:
            audit.record(
                "hook", stage,
                {"stage": stage, "tool": tool_name, "hooks": len(hooks)},
                session_id=session_id,
            )
        if hooks:
            logger.debug(f"Running {len(hooks)} {stage} hook(s) for {tool_name}")

        failures = 0
        for hook in hooks:
            if not await self._invoke(stage, hook, args, tool_name, audit, session_id):
                failures += 1
        return failures

    async def _invoke(
        self,
        stage: str,
        hook: Callable[..., Any],
        args: tuple,
        tool_name: Optional[str],
        audit: Optional["AuditLog"],
        session_id: Optional[str],
    ) -> bool:
        hook_name = getattr(hook, "__qualname__", None) or repr(hook)
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
            return True
        except Exception as e:
            logger.warning(f"Hook {hook_name} failed during {stage}: {e}")
            if audit is not None:
                audit.record(
                    "hook_error", stage,
                    {
                        "stage": stage,
                        "hook": hook_name,
                        "tool": tool_name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    session_id=session_id,
                )
            return False
