"""
Infrastructure Layer
Persistence, repositories and background tasks
"""
