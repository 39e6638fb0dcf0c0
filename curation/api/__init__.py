"""
API Package
Presentation helpers and FastAPI routers
"""
