"""
chatlens — rule-based red-flag and conflict-dynamics analysis for chat transcripts.
"""

__version__ = '1.0.0'
