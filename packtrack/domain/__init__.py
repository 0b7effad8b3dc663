"""
Domain layer for PackTrack.

Immutable records produced by normalizing upstream orders and carrier
tracking responses, plus the status vocabulary shared by both.
"""
