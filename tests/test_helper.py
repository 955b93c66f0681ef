import datetime
import unittest

from cachedecoder.utils.dataModels import ResourceDescriptor
from cachedecoder.utils.helper import rel_time_iso, resolve_output, server_label


def descriptor(url="http://127.0.0.1:30120/x", name="myresource") -> ResourceDescriptor:
    return ResourceDescriptor(url, "blob", "stream.rpf", name, "cafebabe", bytes(32), bytes(8))


class TemplateTests(unittest.TestCase):
    def setUp(self):
        self.mtime = datetime.datetime(2021, 3, 7, 12, 30, tzinfo=datetime.timezone.utc).timestamp()

    def test_server_and_name(self):
        self.assertEqual(resolve_output("dump/%s/%n", descriptor(), self.mtime), "dump/127.0.0.1_30120/myresource")

    def test_date_and_hash(self):
        self.assertEqual(resolve_output("%y-%m-%d/%h", descriptor(), self.mtime), "2021-3-7/cafebabe")

    def test_unknown_placeholder_passes_through(self):
        self.assertEqual(resolve_output("out/%x/%n%", descriptor(), self.mtime), "out/%x/myresource%")

    def test_default_ports(self):
        self.assertEqual(server_label("http://example.com/files"), "example.com_80")
        self.assertEqual(server_label("https://example.com/files"), "example.com_443")

    def test_server_label_rejects_unusable_urls(self):
        with self.assertRaises(ValueError):
            server_label("no-host")
        with self.assertRaises(ValueError):
            server_label("http://127.0.0.1:abc/x")

    def test_rel_time_iso(self):
        self.assertEqual(rel_time_iso(self.mtime), "2021-03-07T12:30:00Z")


if __name__ == "__main__":
    unittest.main()
