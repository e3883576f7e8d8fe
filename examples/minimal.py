#!/usr/bin/env python3
"""
SeedStream Minimal Example - Magnet to HLS
==========================================

Prerequisites:
    1. SeedStream running: seedstream (or python -m seedstream)
    2. MinIO (or another S3 endpoint) with a public "hls" bucket

Usage:
    python examples/minimal.py "magnet:?xt=urn:btih:..."
"""

import asyncio
import sys

from seedstream.client import SeedStreamClient


async def main(magnet: str) -> int:
    client = SeedStreamClient("http://localhost:3000")

    if not await client.health_check():
        print("SeedStream is not reachable on localhost:3000")
        return 1

    job = await client.start_stream(magnet=magnet)
    if job is None:
        print("Submission rejected")
        return 1

    print(f"Job ID: {job.unique_id}")
    job = await client.wait_for_completion(job.unique_id, poll_interval=5.0)
    if job is None:
        print("Gave up waiting for the job")
        return 1
    print(f"Finished: {job.status}")

    for playlist in await client.get_playlists(job.unique_id):
        print(f"{playlist.file_name}: {playlist.playlist_url}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
