import unittest
from unittest.mock import patch

import storage


class TestEnsureRootFolder(unittest.TestCase):
    def setUp(self):
        self._saved = storage._root_folder_created
        storage._root_folder_created = False

    def tearDown(self):
        storage._root_folder_created = self._saved

    def test_local_root_created_once(self):
        with patch("storage.AWS_S3_BUCKET", None), patch("storage.os.makedirs") as mock_makedirs:
            self.assertTrue(storage.ensure_root_folder())
            self.assertFalse(storage.ensure_root_folder())
        mock_makedirs.assert_called_once_with(storage.settings.files_root, exist_ok=True)

    def test_s3_marker_written_when_missing(self):
        with patch("storage.AWS_S3_BUCKET", "bucket"), \
             patch("storage.s3_key_exists", return_value=False), \
             patch("storage.create_folder_marker") as mock_marker:
            self.assertTrue(storage.ensure_root_folder())
            self.assertFalse(storage.ensure_root_folder())
        mock_marker.assert_called_once_with("bucket", storage.settings.files_root)

    def test_s3_marker_kept_when_present(self):
        with patch("storage.AWS_S3_BUCKET", "bucket"), \
             patch("storage.s3_key_exists", return_value=True), \
             patch("storage.create_folder_marker") as mock_marker:
            self.assertTrue(storage.ensure_root_folder())
        mock_marker.assert_not_called()


if __name__ == "__main__":
    unittest.main()
