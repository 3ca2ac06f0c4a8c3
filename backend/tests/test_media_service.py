import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from tripdesk.services import media_service
from tripdesk.services.media_service import EXPIRY_TIMES, generate_signed_url, generate_signed_urls
from tripdesk.services.storage_service import MAX_EXPIRATION, StorageService


class TestSignedUrls(unittest.IsolatedAsyncioTestCase):

    async def test_blank_keys_return_none(self):
        for key in (None, "", "   ", 42):
            with self.subTest(key=key):
                self.assertIsNone(await generate_signed_url(key, "IMAGE"))

    @patch("tripdesk.services.media_service.StorageService.get_download_url", new_callable=AsyncMock)
    async def test_expiry_depends_on_media_type(self, mock_url):
        mock_url.return_value = "https://signed"

        for media_type, expiry in [("IMAGE", 300), ("video", 900), ("PROFILE", 600), ("whatever", 600)]:
            with self.subTest(media_type=media_type):
                self.assertEqual(await generate_signed_url(" key.jpg ", media_type), "https://signed")
                mock_url.assert_awaited_with("key.jpg", expiry)

        self.assertEqual(EXPIRY_TIMES["AUDIO"], 900)
        self.assertEqual(EXPIRY_TIMES["LOCALE"], 300)

    @patch("tripdesk.services.media_service.StorageService.get_download_url", new_callable=AsyncMock)
    async def test_signing_failure_returns_none(self, mock_url):
        mock_url.side_effect = RuntimeError("STORAGE_BUCKET is not configured")
        self.assertIsNone(await generate_signed_url("key.jpg", "IMAGE"))

    @patch("tripdesk.services.media_service.StorageService.get_download_url", new_callable=AsyncMock)
    async def test_many_keys_keep_order(self, mock_url):
        mock_url.side_effect = lambda key, expiry: f"https://signed/{key}"
        urls = await generate_signed_urls(["a", "b", "c"], "IMAGE")
        self.assertEqual(urls, ["https://signed/a", "https://signed/b", "https://signed/c"])
        self.assertEqual(await generate_signed_urls([], "IMAGE"), [])


class TestStorageService(unittest.IsolatedAsyncioTestCase):

    async def test_requires_bucket(self):
        with patch.object(media_service.StorageService, "get_client") as get_client, \
                patch("tripdesk.services.storage_service.settings.STORAGE_BUCKET", ""):
            with self.assertRaises(RuntimeError):
                await StorageService.get_download_url("key.jpg")
            get_client.assert_not_called()

    async def test_presigns_get_with_capped_expiry(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = "https://bucket/key.jpg?sig"
        with patch.object(StorageService, "get_client", return_value=client), \
                patch("tripdesk.services.storage_service.settings.STORAGE_BUCKET", "media"):
            url = await StorageService.get_download_url("key.jpg", MAX_EXPIRATION * 2)

        self.assertEqual(url, "https://bucket/key.jpg?sig")
        client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "media", "Key": "key.jpg"},
            ExpiresIn=MAX_EXPIRATION,
        )


if __name__ == "__main__":
    unittest.main()
