"""Tests for the command-line wiring."""

import asyncio
import threading
import unittest
from pathlib import Path

import runner


class TestParseArgs(unittest.TestCase):

    def test_user_defaults(self):
        args = runner.parse_args(["user", "bob"])
        settings = runner.build_settings(args)
        self.assertEqual(args.command, "user")
        self.assertEqual(args.name, "bob")
        self.assertEqual(settings.output_root, Path("videos"))
        self.assertIsNone(settings.metadata_dir)
        self.assertEqual(settings.tool, "yt-dlp")
        self.assertEqual(settings.fragments, 4)
        self.assertFalse(settings.auto_finish)

    def test_tag_with_options(self):
        args = runner.parse_args([
            "--storage-state", "me.json", "tag", "cats",
            "--out", "dl", "--save-json", "--fragments", "8", "--headless", "--auto-finish",
        ])
        settings = runner.build_settings(args)
        self.assertEqual(settings.metadata_dir, Path("dl/jsons"))
        self.assertEqual(settings.fragments, 8)
        self.assertEqual(settings.storage_state, "me.json")
        self.assertTrue(settings.headless)
        self.assertTrue(settings.auto_finish)

    def test_name_optional(self):
        self.assertIsNone(runner.parse_args(["user"]).name)

    def test_login(self):
        self.assertEqual(runner.parse_args(["login"]).command, "login")

    def test_fragments_floor(self):
        settings = runner.build_settings(runner.parse_args(["user", "bob", "--fragments", "0"]))
        self.assertEqual(settings.fragments, 1)


class TestPrompts(unittest.TestCase):

    def test_ask_name_repeats_until_given(self):
        answers = iter(["", "   ", "bob"])
        self.assertEqual(runner.ask_name("user", prompt=lambda _: next(answers)), "bob")


class TestAskOperator(unittest.IsolatedAsyncioTestCase):

    async def test_resume(self):
        answers = iter(["maybe", "r"])
        self.assertFalse(await runner.ask_operator(3, prompt=lambda _: next(answers)))

    async def test_done(self):
        self.assertTrue(await runner.ask_operator(3, prompt=lambda _: "done"))

    async def test_eof_means_done(self):
        def closed(_):
            raise EOFError

        self.assertTrue(await runner.ask_operator(3, prompt=closed))

    async def test_cancel_does_not_wait_for_keyboard(self):
        release = threading.Event()
        cancel = asyncio.Event()

        def blocking(_):
            release.wait(5)
            return "r"

        asyncio.get_running_loop().call_later(0.05, cancel.set)
        try:
            done = await asyncio.wait_for(runner.ask_operator(3, cancel, prompt=blocking), timeout=2)
        finally:
            release.set()
        self.assertTrue(done)

    async def test_auto_finish_skips_prompt(self):
        settings = runner.build_settings(runner.parse_args(["user", "bob", "--auto-finish"]))
        decide = runner.make_decision(settings, asyncio.Event())
        self.assertTrue(await decide(3))


if __name__ == "__main__":
    unittest.main()
