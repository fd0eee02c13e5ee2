"""
Services layer for the video manual application.
Contains frame extraction, caching, the step timeline and manual orchestration.
"""
