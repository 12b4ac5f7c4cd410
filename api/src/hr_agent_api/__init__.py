"""API package for the HR agent.

This package provides the FastAPI application that answers questions about
the employee dataset with a tool-calling agent and checkpointed conversations.
"""
