"""
Video Curation Activity Core
Activity feed, notifications and collection sharing for video collections
"""

__version__ = "0.1.0"
