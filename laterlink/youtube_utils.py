import re

# youtu.be/ID, /v/ID, /u/x/ID, /embed/ID, watch?v=ID, &v=ID
VIDEO_ID_PATTERN = re.compile(r"^.*(youtu.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")

VIDEO_ID_LENGTH = 11

EMBED_BASE = "https://www.youtube.com/embed/"


def extract_video_id(url: str | None) -> str | None:
    """
    Pull the 11-character video id out of a YouTube URL.

    Matching is purely syntactic: the video is never looked up, and anything
    whose captured id is not exactly 11 characters long yields None.
    """
    if not url:
        return None
    match = VIDEO_ID_PATTERN.match(url)
    if not match:
        return None
    video_id = match.group(2)
    if len(video_id) != VIDEO_ID_LENGTH:
        return None
    return video_id


def embed_url(video_id: str) -> str:
    return f"{EMBED_BASE}{video_id}"
