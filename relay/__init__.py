"""
Call Relay HTTP service.
"""
