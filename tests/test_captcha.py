"""Tests for the background captcha watcher."""

import asyncio
import unittest

from feedgrab.adapters.tiktok import CAPTCHA
from feedgrab.captcha import CaptchaGate
from feedgrab.errors import SessionLost

from fakes import BrokenCaptchaSession, FakeSession


def make_gate():
    return CaptchaGate(CAPTCHA, interval=0.01, wait_interval=0.01)


class TestCaptchaGate(unittest.IsolatedAsyncioTestCase):

    async def test_initial_state_known_after_start(self):
        gate = make_gate()
        await gate.start(FakeSession(captcha=True))
        try:
            self.assertTrue(gate.is_blocked())
            self.assertTrue(gate.running)
        finally:
            await gate.stop()

    async def test_transitions_logged(self):
        session = FakeSession()
        gate = make_gate()
        with self.assertLogs("feedgrab.captcha", level="INFO") as logs:
            await gate.start(session)
            session.captcha = True
            await asyncio.sleep(0.05)
            self.assertTrue(gate.is_blocked())
            session.captcha = False
            await asyncio.sleep(0.05)
            self.assertFalse(gate.is_blocked())
            await gate.stop()

        self.assertEqual(len([r for r in logs.records if r.levelname == "WARNING"]), 1)
        self.assertTrue(any("cleared" in r.getMessage() for r in logs.records))

    async def test_wait_until_clear(self):
        session = FakeSession(captcha=True)
        gate = make_gate()
        await gate.start(session)
        try:
            asyncio.get_running_loop().call_later(0.05, setattr, session, "captcha", False)
            cancelled = await asyncio.wait_for(gate.wait_until_clear(), timeout=2)
            self.assertFalse(cancelled)
            self.assertFalse(gate.is_blocked())
        finally:
            await gate.stop()

    async def test_wait_until_clear_honours_cancel(self):
        gate = make_gate()
        await gate.start(FakeSession(captcha=True))
        cancel = asyncio.Event()
        try:
            asyncio.get_running_loop().call_later(0.05, cancel.set)
            cancelled = await asyncio.wait_for(gate.wait_until_clear(cancel), timeout=2)
            self.assertTrue(cancelled)
            self.assertTrue(gate.is_blocked())
        finally:
            await gate.stop()

    async def test_stop_is_idempotent(self):
        gate = make_gate()
        await gate.start(FakeSession())
        await gate.stop()
        await gate.stop()
        self.assertFalse(gate.running)

    async def test_stop_without_start(self):
        gate = make_gate()
        await gate.stop()
        self.assertFalse(gate.running)

    async def test_double_start_rejected(self):
        gate = make_gate()
        await gate.start(FakeSession())
        try:
            with self.assertRaises(RuntimeError):
                await gate.start(FakeSession())
        finally:
            await gate.stop()

    async def test_poller_ends_when_session_lost(self):
        session = FakeSession()
        gate = make_gate()
        await gate.start(session)
        session.lost = True
        await asyncio.sleep(0.05)
        self.assertFalse(gate.running)
        await gate.stop()

    async def test_wait_raises_once_session_is_lost(self):
        session = FakeSession(captcha=True)
        gate = make_gate()
        await gate.start(session)
        try:
            asyncio.get_running_loop().call_later(0.05, setattr, session, "lost", True)
            with self.assertRaises(SessionLost):
                await asyncio.wait_for(gate.wait_until_clear(), timeout=2)
        finally:
            await gate.stop()

    async def test_unexpected_poller_error_opens_gate(self):
        session = BrokenCaptchaSession(captcha=True, fail_on=2)
        gate = make_gate()
        with self.assertLogs("feedgrab.captcha", level="ERROR"):
            await gate.start(session)
            cancelled = await asyncio.wait_for(gate.wait_until_clear(), timeout=2)
        self.assertFalse(cancelled)
        self.assertFalse(gate.running)
        await gate.stop()


if __name__ == "__main__":
    unittest.main()
