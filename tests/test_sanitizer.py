from bs4 import BeautifulSoup

from mailnotes.services.sanitizer import HtmlSanitizer


def _img(html):
    return BeautifulSoup(html, "html.parser").find("img")


class TestHtmlSanitizer:
    def test_empty_input_returns_empty(self):
        assert HtmlSanitizer().sanitize("") == ""

    def test_removes_scripts(self):
        result = HtmlSanitizer().sanitize("<p>Hello</p><script>track()</script><p>World</p>")

        assert "<script" not in result
        assert "track()" not in result
        assert "Hello" in result
        assert "World" in result

    def test_removes_tracking_pixels_keeps_real_images(self):
        html = (
            '<img src="https://cdn.example.com/hero.png" width="600">'
            '<img src="https://mail.example.com/a.gif" width="1" height="1">'
            '<img src="https://mail.example.com/b.gif" height="0px">'
            '<img src="https://t.example.com/open.aspx?id=1">'
            '<img src="https://cdn.example.com/photo.jpg">'
        )
        result = HtmlSanitizer().sanitize(html)

        assert "hero.png" in result
        assert "photo.jpg" in result
        assert "a.gif" not in result
        assert "b.gif" not in result
        assert "open.aspx" not in result

    def test_is_tracking_pixel(self):
        sanitizer = HtmlSanitizer(tracker_patterns=["/track/open"])

        assert sanitizer.is_tracking_pixel(_img('<img src="x.gif" width="1" height="1">'))
        assert sanitizer.is_tracking_pixel(_img('<img src="https://e.com/track/open/9">'))
        assert not sanitizer.is_tracking_pixel(_img('<img src="x.png" width="10" height="10">'))

    def test_removes_hidden_preheader(self):
        html = (
            '<div style="display: none; max-height: 0px; overflow: hidden;">Preview text here</div>'
            "<p>Body</p>"
        )
        result = HtmlSanitizer().sanitize(html)

        assert "Preview text here" not in result
        assert "Body" in result

    def test_keeps_hidden_layout_container(self):
        html = '<div style="display:none"><table><tr><td>Mobile menu</td></tr></table></div>'
        result = HtmlSanitizer().sanitize(html)

        assert "Mobile menu" in result

    def test_partial_opacity_is_not_hidden(self):
        result = HtmlSanitizer().sanitize('<span style="opacity: 0.5">Faded caption</span>')

        assert "Faded caption" in result

    def test_removes_nested_compliance_banner(self):
        html = (
            "<p>Before banner</p>"
            '<table class="tracker-report"><tr><td>'
            "<table><tr><td>"
            "<table><tr><td>3 trackers removed</td></tr></table>"
            "Protected by relay"
            "</td></tr></table>"
            "</td></tr></table>"
            "<p>After banner</p>"
        )
        result = HtmlSanitizer().sanitize(html)

        assert "trackers removed" not in result
        assert "Protected by relay" not in result
        assert "Before banner" in result
        assert "After banner" in result

    def test_compliance_banner_removal_climbs_single_child_wrappers(self):
        html = (
            '<table><tr><td><div class="duckduckgo-email-protection">Banner</div></td></tr></table>'
            "<p>Keep</p>"
        )
        result = HtmlSanitizer().sanitize(html)

        assert "Banner" not in result
        assert "<table>" not in result
        assert "Keep" in result

    def test_compliance_marker_as_attribute_name(self):
        html = "<div data-email-protection>Relay notice</div><p>Story</p>"
        result = HtmlSanitizer().sanitize(html)

        assert "Relay notice" not in result
        assert "Story" in result

    def test_removes_spam_report_links(self):
        html = '<p>Body <a href="https://relay.example/report-spam?id=1">Report spam</a></p>'
        result = HtmlSanitizer().sanitize(html)

        assert "Report spam" not in result
        assert "Body" in result

    def test_drops_content_after_document_end(self):
        html = (
            "<html><body><p>Content</p></body></html>\n"
            "You received this because you subscribed.\n"
            "To unsubscribe click here."
        )
        result = HtmlSanitizer().sanitize(html)

        assert "Content" in result
        assert "You received this" not in result

    def test_drops_footer_after_body_without_document_end(self):
        html = (
            "<html><body><p>Real content</p></body>\n"
            "You received this because you joined. To unsubscribe click here."
        )
        result = HtmlSanitizer().sanitize(html)

        assert "Real content" in result
        assert "You received this" not in result
        assert "unsubscribe" not in result

    def test_drops_footer_between_body_and_document_end(self):
        html = (
            "<html><body><p>Real content</p></body>\n"
            "You received this because you joined.\n"
            "</html>"
        )
        result = HtmlSanitizer().sanitize(html)

        assert "Real content" in result
        assert "You received this" not in result

    def test_removes_mso_conditional_blocks(self):
        html = (
            "<!--[if mso]><table><tr><td>Outlook only</td></tr></table><![endif]-->"
            "<!--[if !mso]><!--><p>Modern clients</p><!--<![endif]-->"
            "<p>Everyone</p>"
        )
        result = HtmlSanitizer().sanitize(html)

        assert "Outlook only" not in result
        assert "<p>Modern clients</p>" in result
        assert "endif" not in result
        assert "Everyone" in result

    def test_collapses_blank_line_runs(self):
        result = HtmlSanitizer().sanitize("<p>a</p>\n\n\n\n\n<p>b</p>")

        assert "\n\n\n" not in result
        assert "<p>a</p>\n\n<p>b</p>" in result

    def test_preserves_layout_and_styles(self):
        html = '<style>.x{color:red}</style><table><tr><td style="color:red">Cell</td></tr></table>'
        result = HtmlSanitizer().sanitize(html)

        assert "<style>" in result
        assert "<table>" in result
        assert 'style="color:red"' in result

    def test_malformed_html_does_not_raise(self):
        result = HtmlSanitizer().sanitize("<div><p>Unclosed <b>bold")

        assert "Unclosed" in result

    def test_sanitize_is_idempotent(self):
        html = (
            '<div style="display:none">Preheader</div>'
            '<table><tr><td><p>Story <a href="https://example.com">link</a></p>'
            '<img src="https://cdn.example.com/hero.png" width="600"></td></tr></table>'
            '<img src="https://mail.example.com/p.gif" width="1" height="1">'
        )
        sanitizer = HtmlSanitizer()
        once = sanitizer.sanitize(html)

        assert sanitizer.sanitize(once) == once
