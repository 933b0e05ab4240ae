"""
Narration pipeline.

Turns batches of structured rows into narrated audio: validation, text
generation, chunking, per-chunk speech synthesis, merge and upload.
"""

__version__ = "1.0.0"
