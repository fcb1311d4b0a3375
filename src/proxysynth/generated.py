"""Engine-owned namespace for proxies of public contracts.

Generated classes are published here as module attributes when module
injection is enabled.
"""
