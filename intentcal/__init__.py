"""
Natural-language scheduling: intent extraction, resolution and application.
"""
