"""
Conversation state, persistence and turn orchestration.
"""
