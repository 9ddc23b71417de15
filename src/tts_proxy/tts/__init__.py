"""
Synthesis and Cache Components.

    - client.py: Synthesis provider client (payload, HTTP call, base64 decode)
    - storage.py: Cache key derivation, path safety, atomic file I/O
"""
