import os
import unittest
from importlib import util as importlib_util

from fakes import sample_invoice

PLAYWRIGHT_AVAILABLE = importlib_util.find_spec("playwright") is not None
BROWSER_TESTS = os.getenv("INVOICE_BROWSER_TESTS") == "1"
if PLAYWRIGHT_AVAILABLE:
    from invoice_pdf.config import render_profiles
    from invoice_pdf.fallback import FallbackOrchestrator
    from invoice_pdf.playwright_driver import PlaywrightDriver


@unittest.skipUnless(
    PLAYWRIGHT_AVAILABLE and BROWSER_TESTS,
    "needs playwright with chromium installed and INVOICE_BROWSER_TESTS=1",
)
class PlaywrightRenderingTests(unittest.TestCase):
    def test_generate_returns_pdf_bytes(self) -> None:
        full, degraded = render_profiles("test")
        orchestrator = FallbackOrchestrator(
            driver=PlaywrightDriver(),
            full_config=full,
            degraded_config=degraded,
        )

        result = orchestrator.generate(sample_invoice())

        self.assertTrue(result.content.startswith(b"%PDF"))
        self.assertGreater(result.byte_length, 100)


if __name__ == "__main__":
    unittest.main()
