"""
Shared helpers: configuration, host detection, side-effect runner and prompts
"""
