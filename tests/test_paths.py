import unittest

from s3_vault.keys import (
    base_name,
    compose_key,
    ensure_folder_prefix,
    format_size,
    parent_prefix,
    relative_key,
    replace_prefix,
)
from s3_vault.paths import PathState


class KeyHelperTests(unittest.TestCase):
    def test_replace_prefix_only_at_start(self):
        self.assertEqual("a/c/d/e.txt", replace_prefix("a/b/d/e.txt", "a/b/", "a/c/"))
        self.assertEqual("z/a/b/x", replace_prefix("q/a/b/x", "q/", "z/"))
        with self.assertRaises(ValueError):
            replace_prefix("x/a/b/", "a/b/", "a/c/")

    def test_relative_key(self):
        self.assertEqual("trip/a.jpg", relative_key("photos/2024/trip/a.jpg", "photos/2024/"))
        self.assertEqual("other/a.jpg", relative_key("other/a.jpg", "photos/"))

    def test_parent_prefix_and_base_name(self):
        self.assertEqual("a/b/", parent_prefix("a/b/c.txt"))
        self.assertEqual("a/", parent_prefix("a/b/"))
        self.assertEqual("", parent_prefix("c.txt"))
        self.assertEqual("c.txt", base_name("a/b/c.txt"))
        self.assertEqual("b", base_name("a/b/"))
        self.assertEqual("download", base_name(""))

    def test_compose_key(self):
        self.assertEqual("folder/file.txt", compose_key("folder", "file.txt"))
        self.assertEqual("folder/file.txt", compose_key("/folder/", " file.txt "))
        self.assertEqual("file.txt", compose_key("", "file.txt"))
        with self.assertRaises(ValueError):
            compose_key("folder/", "  ")

    def test_ensure_folder_prefix(self):
        self.assertEqual("", ensure_folder_prefix(""))
        self.assertEqual("a/b/", ensure_folder_prefix("/a/b"))

    def test_format_size(self):
        self.assertEqual("-", format_size(None))
        self.assertEqual("512 B", format_size(512))
        self.assertEqual("1.5 KB", format_size(1536))


class PathStateTests(unittest.TestCase):
    def test_starts_at_root(self):
        state = PathState()

        self.assertEqual("", state.current)
        self.assertTrue(state.is_root)

    def test_navigate_normalizes_trailing_delimiter(self):
        state = PathState()

        self.assertEqual("docs/reports/", state.navigate("docs/reports"))
        self.assertEqual("docs/reports/q1.pdf", state.resolve("q1.pdf"))

    def test_enter_and_up(self):
        state = PathState("docs/")

        state.enter("reports")
        self.assertEqual("docs/reports/", state.current)
        state.up()
        self.assertEqual("docs/", state.current)
        state.up()
        state.up()
        self.assertEqual("", state.current)

    def test_breadcrumbs(self):
        state = PathState("a/b/c/")

        self.assertEqual(
            [("Root", ""), ("a", "a/"), ("b", "a/b/"), ("c", "a/b/c/")],
            state.breadcrumbs(),
        )

    def test_sessions_are_independent(self):
        first = PathState()
        second = PathState()

        first.navigate("x/")

        self.assertEqual("", second.current)


if __name__ == "__main__":
    unittest.main()
