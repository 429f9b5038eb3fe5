"""
debridcache - Real-Debrid cache resolution and quota engine
"""
__version__ = "1.0.0"
