"""
Application Package
Configuration, database wiring and the FastAPI app
"""
