# =======================================================================================
# campus_gate/__init__.py - Package Initialization
# =======================================================================================
"""
Campus Gate-Pass Authorization Engine

Presence tracking, gate-pass approval pipelines and single-use QR tokens
for student exit and entry at the campus gate.
"""

__version__ = "1.0.0"
__author__ = "Campus Gate Team"
