"""
Fixed HLS encoding profile.

Every file is encoded to one rendition with these settings; callers cannot
override them.
"""

PLAYLIST_NAME = "index.m3u8"
SEGMENT_PATTERN = "index%d.ts"
SEGMENT_SUFFIX = ".ts"
PLAYLIST_SUFFIX = ".m3u8"

SEGMENT_DURATION = 10  # seconds
PLAYLIST_SIZE = 0  # keep every segment, no sliding window
START_NUMBER = 0

VIDEO_CODEC = "libx264"
VIDEO_PROFILE = "baseline"
VIDEO_LEVEL = "3.0"
PRESET = "veryfast"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "128k"

# Lines of ffmpeg stderr kept for error reports
STDERR_TAIL_LINES = 100
ERROR_MESSAGE_CHARS = 1000
