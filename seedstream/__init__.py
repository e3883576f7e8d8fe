"""
SeedStream - torrent to HLS publishing service
"""

__version__ = "1.0.0"
__author__ = "SeedStream Contributors"
