"""
SimReg utilities package.
Internal utilities - not part of public API.
"""
