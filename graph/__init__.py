"""
LangGraph cascade package
"""
