"""
Application services for the Dali chat.
"""
