"""
Utility Modules for tts-proxy.

    - timeit.py: Performance measurement helper
"""
