"""
Tests for HTML fragment surgery: body cleanup, internal-links splicing and video injection.
"""

import unittest

from seo_wizard.utils.html_fragments import (INTERNAL_LINKS_CLASS, VIDEO_CONTAINER_ID,
                                             build_internal_links_block, count_references_sections,
                                             extract_html_body, inject_video, remove_video,
                                             splice_internal_links)
from seo_wizard.video import build_video_asset

REFERENCES = (
    '<section class="authority-references">\n<h3>🎓 Authority References</h3>\n<ol>\n'
    '<li><a href="https://www.iea.org">IEA</a></li>\n</ol>\n</section>'
)
BODY = f'<article><h1>Solar energy brazil 2025</h1><p>Lead paragraph.</p><h2>Costs</h2><p>Text.</p>{REFERENCES}<p>Conclusion.</p></article>'
LINKS = [
    {"title": "Solar panel prices", "url": "https://blog.example.com/solar-prices"},
    {"title": "Net metering", "url": "https://blog.example.com/net-metering"},
]


def make_video():
    return build_video_asset("solar energy brazil", "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                             title="Solar in Brazil", caption="How solar grew in Brazil")


class TestExtractHtmlBody(unittest.TestCase):

    def test_strips_fences_and_page_tags(self):
        raw = "```html\n<!DOCTYPE html><html><body><article><p>Hi</p></article></body></html>\n```"
        self.assertEqual(extract_html_body(raw), "<article><p>Hi</p></article>")

    def test_stray_backticks_removed(self):
        self.assertEqual(extract_html_body("<p>Hi</p>```"), "<p>Hi</p>")

    def test_count_references_sections(self):
        self.assertEqual(count_references_sections(BODY), 1)
        self.assertEqual(count_references_sections(BODY + REFERENCES), 2)
        self.assertEqual(count_references_sections("<h2>References</h2><ol></ol>"), 1)
        self.assertEqual(count_references_sections("<p>none</p>"), 0)

    def test_topical_headings_are_not_references(self):
        body = ("<article><h2>Renewable energy sources in Brazil</h2><ul><li>Hydro</li></ul>"
                "<h3>User preferences</h3><p>Text.</p></article>")
        self.assertEqual(count_references_sections(body), 0)
        self.assertEqual(count_references_sections("<h3>📚 Sources:</h3><ul></ul>"), 1)


class TestSpliceInternalLinks(unittest.TestCase):

    def test_inserted_right_after_references(self):
        result = splice_internal_links(BODY, build_internal_links_block(LINKS))
        self.assertEqual(result.count(INTERNAL_LINKS_CLASS), 1)
        self.assertLess(result.index("</section>"), result.index(INTERNAL_LINKS_CLASS))
        self.assertLess(result.index(INTERNAL_LINKS_CLASS), result.index("Conclusion."))

    def test_later_ordered_list_does_not_move_the_block(self):
        body = ('<article><p>Lead.</p><section class="authority-references"><h3>References</h3>'
                '<ul><li><a href="https://www.iea.org">IEA</a></li></ul></section>'
                '<h2>Steps</h2><ol><li>Plan</li></ol><p>End.</p></article>')
        result = splice_internal_links(body, build_internal_links_block(LINKS))
        self.assertLess(result.index("</section>"), result.index(INTERNAL_LINKS_CLASS))
        self.assertLess(result.index(INTERNAL_LINKS_CLASS), result.index("<h2>Steps</h2>"))

    def test_heading_found_section_ends_at_nearest_list(self):
        body = ("<article><h2>References</h2><ul><li>IEA</li></ul>"
                "<h2>Steps</h2><ol><li>Plan</li></ol></article>")
        result = splice_internal_links(body, build_internal_links_block(LINKS))
        self.assertLess(result.index(INTERNAL_LINKS_CLASS), result.index("<h2>Steps</h2>"))

    def test_topical_sources_heading_is_not_a_splice_point(self):
        body = ("<article><h2>Renewable energy sources in Brazil</h2><ul><li>Hydro</li></ul>"
                "<p>More.</p></article>")
        result = splice_internal_links(body, build_internal_links_block(LINKS))
        self.assertLess(result.index("More."), result.index(INTERNAL_LINKS_CLASS))
        self.assertTrue(result.endswith("</article>"))

    def test_before_article_close_without_references(self):
        body = "<article><h1>T</h1><p>Only text.</p></article>"
        result = splice_internal_links(body, build_internal_links_block(LINKS))
        self.assertTrue(result.endswith("</article>"))
        self.assertLess(result.index("Only text."), result.index(INTERNAL_LINKS_CLASS))

    def test_appended_without_article(self):
        result = splice_internal_links("<p>Text.</p>", build_internal_links_block(LINKS))
        self.assertTrue(result.startswith("<p>Text.</p>"))
        self.assertIn("blog.example.com/net-metering", result)

    def test_splicing_twice_keeps_one_block(self):
        block = build_internal_links_block(LINKS)
        once = splice_internal_links(BODY, block)
        twice = splice_internal_links(once, block)
        self.assertEqual(once, twice)

    def test_no_links_leaves_body_unchanged(self):
        self.assertEqual(build_internal_links_block([]), "")
        self.assertEqual(splice_internal_links(BODY, ""), BODY)

    def test_link_titles_are_escaped(self):
        block = build_internal_links_block([{"title": "<script>x</script>", "url": "https://a.com/x"}])
        self.assertNotIn("<script>", block)


class TestInjectVideo(unittest.TestCase):

    def test_inserted_after_first_paragraph(self):
        result = inject_video(BODY, make_video())
        self.assertLess(result.index("Lead paragraph.</p>"), result.index(VIDEO_CONTAINER_ID))
        self.assertLess(result.index(VIDEO_CONTAINER_ID), result.index("<h2>Costs</h2>"))

    def test_idempotent(self):
        video = make_video()
        once = inject_video(BODY, video)
        twice = inject_video(once, video)
        self.assertEqual(once, twice)
        self.assertEqual(twice.count(VIDEO_CONTAINER_ID), 1)

    def test_after_h1_without_paragraph(self):
        result = inject_video("<h1>Title</h1><h2>Section</h2>", make_video())
        self.assertTrue(result.startswith("<h1>Title</h1>"))
        self.assertLess(result.index(VIDEO_CONTAINER_ID), result.index("<h2>"))

    def test_prepended_as_last_resort(self):
        video = make_video()
        result = inject_video("<div>Bare</div>", video)
        self.assertTrue(result.startswith(f'<div id="{VIDEO_CONTAINER_ID}"'))
        self.assertEqual(inject_video(result, video), result)

    def test_no_video_leaves_fragment_unchanged(self):
        self.assertEqual(inject_video(BODY, None), BODY)

    def test_remove_video_restores_original(self):
        self.assertEqual(remove_video(inject_video(BODY, make_video())), BODY)


if __name__ == '__main__':
    unittest.main()
