"""
AgentFlow - Flow execution engine for AI chat agents.

Runs operator-authored automations (nodes + edges) in reaction to an
inbound chat message, webhook or schedule trigger.
"""

__version__ = "1.0.0"
