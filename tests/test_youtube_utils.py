import unittest

from laterlink.youtube_utils import embed_url, extract_video_id


class TestExtractVideoId(unittest.TestCase):
    """Syntactic extraction of the 11-character id."""

    def test_watch_url(self):
        self.assertEqual(extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ"), "dQw4w9WgXcQ")

    def test_short_link_with_timestamp(self):
        self.assertEqual(extract_video_id("https://youtu.be/dQw4w9WgXcQ?t=5"), "dQw4w9WgXcQ")

    def test_embed_url(self):
        self.assertEqual(extract_video_id("https://www.youtube.com/embed/dQw4w9WgXcQ"), "dQw4w9WgXcQ")

    def test_v_path(self):
        self.assertEqual(extract_video_id("https://www.youtube.com/v/dQw4w9WgXcQ?version=3"), "dQw4w9WgXcQ")

    def test_user_channel_fragment(self):
        self.assertEqual(
            extract_video_id("https://www.youtube.com/user/someone#p/u/1/dQw4w9WgXcQ"),
            "dQw4w9WgXcQ",
        )

    def test_ampersand_v(self):
        self.assertEqual(
            extract_video_id("https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ"),
            "dQw4w9WgXcQ",
        )

    def test_trailing_params_and_fragment(self):
        self.assertEqual(
            extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&list=PL123#comments"),
            "dQw4w9WgXcQ",
        )

    def test_non_youtube_url(self):
        self.assertIsNone(extract_video_id("https://example.com/video"))

    def test_empty_and_none(self):
        self.assertIsNone(extract_video_id(""))
        self.assertIsNone(extract_video_id(None))

    def test_wrong_length_id(self):
        self.assertIsNone(extract_video_id("https://www.youtube.com/watch?v=short"))
        self.assertIsNone(extract_video_id("https://youtu.be/dQw4w9WgXcQXYZ"))

    def test_embed_url_builder(self):
        self.assertEqual(embed_url("dQw4w9WgXcQ"), "https://www.youtube.com/embed/dQw4w9WgXcQ")


if __name__ == "__main__":
    unittest.main()
