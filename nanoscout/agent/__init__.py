"""Agent core module."""

from nanoscout.agent.loop import MAX_TOOL_ITERATIONS, AgentLoop, LoopOutcome

__all__ = ["MAX_TOOL_ITERATIONS", "AgentLoop", "LoopOutcome"]
