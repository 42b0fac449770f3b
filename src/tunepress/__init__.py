"""
tunepress: batch-convert a folder of audio into loudness-matched,
cover-art-embedded M4A files.
"""

__version__ = "0.3.0"
