"""
Services Package
"""
