"""
Services layer - location resolution logic lives here, not in routes.
"""
