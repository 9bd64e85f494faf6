"""Listing presentation PDFs rendered with headless Chromium (Playwright)."""

from __future__ import annotations

import html
import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from concierge.errors import RenderError
from listings.schema import Listing

from .base import DocumentRenderer

log = logging.getLogger("concierge.providers.pdf")

_STYLE = """
* { margin: 0; padding: 0; box-sizing: border-box; }
body { font-family: -apple-system, 'Segoe UI', sans-serif; padding: 40px; }
.header { border-bottom: 3px solid #d4af37; padding-bottom: 20px; margin-bottom: 30px; }
h1 { color: #1a1a1a; font-size: 32px; margin-bottom: 10px; }
.location { color: #666; font-size: 18px; }
.price { font-size: 36px; color: #d4af37; font-weight: bold; margin: 20px 0; }
.details { display: grid; grid-template-columns: 1fr 1fr; gap: 15px; margin: 30px 0; }
.detail-item { padding: 15px; background: #f5f5f5; border-radius: 8px; }
.detail-label { color: #666; font-size: 14px; margin-bottom: 5px; }
.detail-value { color: #1a1a1a; font-size: 18px; font-weight: 600; }
.description { margin: 30px 0; line-height: 1.8; color: #444; }
.features li { padding: 8px 0; list-style: none; color: #444; }
"""


def render_listing_html(listing: Listing) -> str:
    """Standalone HTML presentation page for one listing."""
    esc = html.escape
    details = [
        ("Площадь", f"{listing.area} м²"),
        ("Этаж", str(listing.floor)),
    ]
    if listing.bedrooms is not None:
        details.append(("Спальни", str(listing.bedrooms)))
    if listing.bathrooms is not None:
        details.append(("Ванные", f"{listing.bathrooms:g}"))

    detail_html = "".join(
        f'<div class="detail-item"><div class="detail-label">{esc(label)}</div>'
        f'<div class="detail-value">{esc(value)}</div></div>'
        for label, value in details
    )
    features_html = ""
    if listing.features:
        items = "".join(f"<li>✓ {esc(f)}</li>" for f in listing.features)
        features_html = f'<div class="features"><h3>Особенности</h3><ul>{items}</ul></div>'

    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
        f"<style>{_STYLE}</style></head><body>"
        f'<div class="header"><h1>{esc(listing.name or listing.district)}</h1>'
        f'<div class="location">{esc(listing.district)}, Dubai</div></div>'
        f'<div class="price">{listing.price:,} AED</div>'
        f'<div class="details">{detail_html}</div>'
        f'<div class="description">{esc(listing.description)}</div>'
        f"{features_html}"
        "</body></html>"
    )


class PlaywrightPdfRenderer(DocumentRenderer):
    """Render the presentation HTML to an A4 PDF."""

    def __init__(self, timeout_ms: int = 30_000) -> None:
        self._timeout_ms = timeout_ms

    async def render(self, listing: Listing) -> bytes:
        log.info("Rendering presentation PDF for %s", listing.id)
        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(
                    headless=True, args=["--no-sandbox", "--disable-setuid-sandbox"]
                )
                try:
                    page = await browser.new_page()
                    await page.set_content(
                        render_listing_html(listing),
                        wait_until="networkidle",
                        timeout=self._timeout_ms,
                    )
                    pdf = await page.pdf(
                        format="A4",
                        print_background=True,
                        margin={"top": "20px", "right": "20px", "bottom": "20px", "left": "20px"},
                    )
                finally:
                    await browser.close()
        except PlaywrightError as e:
            log.error("PDF rendering failed for %s: %s", listing.id, e)
            raise RenderError(f"Failed to generate PDF: {e}") from e

        log.info("PDF for %s rendered, %d bytes", listing.id, len(pdf))
        return pdf
