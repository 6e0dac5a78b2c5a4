"""
turnflow - flow-graph execution for branchable LLM chat sessions.

Flows are directed graphs of Start/End, Agent, If and DataStore nodes.
One turn of a chat session is produced by walking a flow channel
(character, user or plot); sessions keep a versioned, branchable history
of those turns.
"""

__version__ = "0.1.0"
