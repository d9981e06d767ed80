import unittest
from dataclasses import replace

from fakes import FAKE_PDF, FakeDriver, Script

from invoice_pdf.config import DEGRADED_PROFILE, FULL_PROFILE
from invoice_pdf.engine import RenderSession, SessionState, open_session
from invoice_pdf.errors import (
    EngineLaunchError,
    EngineProtocolError,
    RenderTimeoutError,
)


class RenderSessionTests(unittest.TestCase):
    def test_successful_render_walks_states_and_closes_page_before_browser(self) -> None:
        driver = FakeDriver()
        session = RenderSession(driver, FULL_PROFILE)
        self.assertEqual(session.state, SessionState.UNOPENED)

        session.open()
        self.assertEqual(session.state, SessionState.READY)

        content = session.render_to_binary("<html><body>ok</body></html>")
        self.assertEqual(content, FAKE_PDF)
        self.assertEqual(session.state, SessionState.SUCCEEDED)

        session.close()
        self.assertEqual(session.state, SessionState.CLOSED)
        self.assertEqual(session.outcome, SessionState.SUCCEEDED)
        self.assertEqual(
            [name for _, name in driver.events],
            [
                "launch",
                "new_page",
                "block_resources",
                "set_content",
                "wait_for_ready",
                "settle",
                "export_pdf",
                "page_close",
                "browser_close",
            ],
        )

    def test_open_applies_blocking_policy_and_render_uses_pdf_options(self) -> None:
        driver = FakeDriver()
        session = open_session(driver, DEGRADED_PROFILE)
        session.render_to_binary("<p>x</p>")
        page = driver.pages[0]
        session.close()

        self.assertIn("script", page.blocked)
        self.assertEqual(page.blocked, DEGRADED_PROFILE.blocked_resources)
        self.assertEqual(page.export_options.format, "A4")
        self.assertEqual(page.settle_delays, [DEGRADED_PROFILE.settle_delay_ms])

    def test_zero_settle_delay_skips_settle(self) -> None:
        driver = FakeDriver()
        with RenderSession(driver, replace(FULL_PROFILE, settle_delay_ms=0)) as session:
            session.render_to_binary("<p>x</p>")

        self.assertNotIn("settle", [name for _, name in driver.events])

    def test_launch_failure_raises_launch_error(self) -> None:
        driver = FakeDriver([Script(fail_at="launch", error=RuntimeError("chrome not found"))])
        session = RenderSession(driver, FULL_PROFILE)

        with self.assertRaises(EngineLaunchError) as ctx:
            session.open()
        session.close()

        self.assertEqual(ctx.exception.stage, "launch")
        self.assertIn("chrome not found", str(ctx.exception))
        self.assertEqual(session.outcome, SessionState.FAILED)
        self.assertTrue(session.closed)

    def test_launch_timeout_is_reported_as_launch_error(self) -> None:
        driver = FakeDriver([Script(fail_at="launch", error=TimeoutError("startup exceeded 60000 ms"))])

        with self.assertRaises(EngineLaunchError):
            open_session(driver, FULL_PROFILE)

    def test_new_page_failure_still_closes_browser(self) -> None:
        driver = FakeDriver([Script(fail_at="new_page")])

        with self.assertRaises(EngineLaunchError):
            open_session(driver, FULL_PROFILE)

        self.assertTrue(driver.browsers[0].closed)

    def test_content_timeout_raises_render_timeout_at_navigate(self) -> None:
        driver = FakeDriver([Script(fail_at="set_content", error=TimeoutError("content load exceeded"))])
        session = open_session(driver, FULL_PROFILE)

        with self.assertRaises(RenderTimeoutError) as ctx:
            session.render_to_binary("<p>x</p>")
        session.close()

        self.assertEqual(ctx.exception.stage, "navigate")
        self.assertTrue(driver.all_released())

    def test_driver_session_error_keeps_type_and_gains_stage(self) -> None:
        driver = FakeDriver([Script(fail_at="wait_for_ready", error=RenderTimeoutError("ready state"))])
        session = open_session(driver, FULL_PROFILE)

        with self.assertRaises(RenderTimeoutError) as ctx:
            session.render_to_binary("<p>x</p>")
        session.close()

        self.assertEqual(ctx.exception.stage, "navigate")

    def test_target_closed_during_export_raises_protocol_error(self) -> None:
        driver = FakeDriver([Script(fail_at="export_pdf", error=RuntimeError("Target closed"))])
        session = open_session(driver, FULL_PROFILE)

        with self.assertRaises(EngineProtocolError) as ctx:
            session.render_to_binary("<p>x</p>")
        session.close()

        self.assertEqual(ctx.exception.stage, "render")
        self.assertIn("Target closed", str(ctx.exception))
        self.assertEqual(session.outcome, SessionState.FAILED)
        self.assertTrue(driver.all_released())

    def test_empty_export_is_a_protocol_error(self) -> None:
        driver = FakeDriver([Script(content=b"")])
        session = open_session(driver, FULL_PROFILE)

        with self.assertRaises(EngineProtocolError):
            session.render_to_binary("<p>x</p>")
        session.close()

    def test_render_before_open_is_rejected(self) -> None:
        session = RenderSession(FakeDriver(), FULL_PROFILE)

        with self.assertRaises(EngineProtocolError):
            session.render_to_binary("<p>x</p>")

    def test_session_cannot_be_reopened(self) -> None:
        session = open_session(FakeDriver(), FULL_PROFILE)
        session.close()

        with self.assertRaises(EngineLaunchError):
            session.open()

    def test_close_is_idempotent(self) -> None:
        driver = FakeDriver()
        session = open_session(driver, FULL_PROFILE)
        session.close()
        session.close()

        self.assertEqual([name for _, name in driver.events].count("browser_close"), 1)

    def test_close_skips_page_already_closed(self) -> None:
        driver = FakeDriver([Script(page_closed_early=True)])
        session = open_session(driver, FULL_PROFILE)
        session.close()

        self.assertEqual(driver.pages[0].close_calls, 0)
        self.assertTrue(driver.browsers[0].closed)

    def test_close_errors_are_logged_not_raised(self) -> None:
        driver = FakeDriver(
            [
                Script(
                    page_close_error=RuntimeError("page already detached"),
                    browser_close_error=RuntimeError("browser gone"),
                )
            ]
        )
        session = open_session(driver, FULL_PROFILE)
        session.render_to_binary("<p>x</p>")

        with self.assertLogs("invoice_pdf.engine", level="WARNING") as logs:
            session.close()

        self.assertTrue(session.closed)
        self.assertEqual(session.outcome, SessionState.SUCCEEDED)
        self.assertEqual(len(logs.records), 2)

    def test_context_manager_closes_on_error(self) -> None:
        driver = FakeDriver([Script(fail_at="export_pdf")])

        with self.assertRaises(EngineProtocolError):
            with RenderSession(driver, FULL_PROFILE) as session:
                session.render_to_binary("<p>x</p>")

        self.assertTrue(session.closed)
        self.assertTrue(driver.all_released())


if __name__ == "__main__":
    unittest.main()
