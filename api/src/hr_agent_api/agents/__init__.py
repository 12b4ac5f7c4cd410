"""Agent workflow components for the HR agent.

This package contains the conversation state, tool registry, rate limiter
and the agent/tools state machine that answers a turn.
"""
