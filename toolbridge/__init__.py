"""
toolbridge - connect a chat model to the tools of an MCP server.

The model decides when to call a tool, results are fed back into the
conversation, and the model produces the final answer.
"""

__version__ = "0.1.0"
