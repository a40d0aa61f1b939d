"""
Utility modules for nostr-narrator.

    - audio.py: WAV decoding into playable buffers
    - timeit.py: Wall-clock timing helpers
"""
