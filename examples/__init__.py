"""
SeedStream Examples
===================

Examples:
    - minimal.py: submit a magnet link, wait for the job and print playlist URLs

See seedstream/client.py for the client API.
"""
