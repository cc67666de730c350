"""
Conversation synchronization and agent invocation for the Dali CRM chat.
"""

__version__ = "0.1.0"
