"""
Tests for keyword enforcement, metadata limits and the technical SEO payload.
"""

import json
import unittest

from seo_wizard.schemas import (AdvancedOptions, Article, ArticleStructure, Author, CompetitiveAnalysis,
                                ImageSpec, SeoMetadata)
from seo_wizard.seo_system import (EXCERPT_MAX_CHARS, META_DESCRIPTION_MAX_CHARS, META_KEYWORD_SPAN,
                                   SEO_TITLE_MAX_CHARS, KeywordExtractor, SchemaMarkupGenerator,
                                   SEOPromptBuilder, default_metadata, enforce_lead, enforce_metadata,
                                   enforce_title, fill_to_count)
from seo_wizard.video import build_video_asset

KEYWORD = "solar energy brazil 2025"


def make_article(**fields):
    defaults = dict(
        topic="Solar energy in Brazil",
        target_keyword=KEYWORD,
        language="English",
        word_count="800",
        site_url="https://blog.example.com/",
        title="Solar energy brazil 2025: outlook",
        html_content=(
            "<article><h1>Solar energy brazil 2025</h1><p>Lead.</p>"
            "<h3>Is solar worth it in Brazil?</h3><p>Yes, for most homes.</p></article>"
        ),
        seo_data=enforce_metadata(SeoMetadata(), KEYWORD),
        created_at="2025-03-01T10:00:00+00:00",
        updated_at="2025-03-02T10:00:00+00:00",
    )
    defaults.update(fields)
    return Article(**defaults)


class TestKeywordRules(unittest.TestCase):

    def test_compliant_title_kept(self):
        self.assertEqual(enforce_title("Best solar energy brazil 2025 guide", KEYWORD),
                         "Best solar energy brazil 2025 guide")

    def test_title_keyword_rewritten_as_typed(self):
        title = enforce_title("Solar Energy Brazil 2025 Guide", KEYWORD)
        self.assertEqual(title, "solar energy brazil 2025 Guide")

    def test_long_title_rebuilt_around_keyword(self):
        title = enforce_title("The ultimate complete guide to solar energy brazil 2025 for homeowners", KEYWORD)
        self.assertLessEqual(len(title.split()), 7)
        self.assertEqual(title, "solar energy brazil 2025: The ultimate complete")
        self.assertIn(KEYWORD, title)

    def test_title_missing_keyword(self):
        title = enforce_title("Sunny Days Ahead", KEYWORD)
        self.assertTrue(title.startswith(KEYWORD))
        self.assertLessEqual(len(title.split()), 7)

    def test_keyword_longer_than_ceiling_used_verbatim(self):
        keyword = "how to install solar panels on a small roof"
        self.assertEqual(enforce_title("Anything", keyword), keyword)

    def test_lead_gets_keyword_prefix(self):
        self.assertEqual(enforce_lead("Brazil is booming.", KEYWORD), f"{KEYWORD}: Brazil is booming.")
        lead = f"In 2025, {KEYWORD} is everywhere."
        self.assertEqual(enforce_lead(lead, KEYWORD), lead)
        self.assertIn(KEYWORD, enforce_lead("Solar Energy Brazil 2025 is everywhere.", KEYWORD)[:100])

    def test_variations_are_plentiful_and_distinct(self):
        variations = KeywordExtractor().generate_variations(KEYWORD)
        self.assertGreater(len(set(variations)), 10)

    def test_fill_to_count(self):
        self.assertEqual(fill_to_count(["a", "A", "b"], 3, ["c", "d"], exclude=("b",)), ["a", "c", "d"])


class TestEnforceMetadata(unittest.TestCase):

    def test_limits_and_cardinality(self):
        meta = SeoMetadata(
            seo_title="A very long SEO title that certainly goes far beyond the sixty character limit",
            meta_description=("Brazil's sunny climate and falling panel prices make rooftop systems attractive "
                              "for homeowners and businesses alike, and the regulatory framework keeps evolving "
                              "so buyers should plan carefully."),
            viral_excerpt="x " * 200,
            synonyms=["solar power brazil"],
            tags=["solar"],
        )
        result = enforce_metadata(meta, KEYWORD, ["photovoltaic", "net metering"])

        self.assertLessEqual(len(result.seo_title), SEO_TITLE_MAX_CHARS)
        self.assertTrue(result.seo_title.startswith(KEYWORD))
        self.assertLessEqual(len(result.meta_description), META_DESCRIPTION_MAX_CHARS)
        self.assertIn(KEYWORD, result.meta_description[:META_KEYWORD_SPAN])
        self.assertLessEqual(len(result.viral_excerpt), EXCERPT_MAX_CHARS)
        self.assertEqual(len(result.synonyms), 4)
        self.assertEqual(len(result.tags), 10)
        self.assertEqual(result.synonyms[0], "solar power brazil")
        self.assertEqual(result.slug, "solar-energy-brazil-2025")

    def test_defaults_are_compliant(self):
        result = enforce_metadata(default_metadata(KEYWORD), KEYWORD)
        self.assertTrue(result.meta_description)
        self.assertLessEqual(len(result.meta_description), META_DESCRIPTION_MAX_CHARS)
        self.assertIn(KEYWORD, result.meta_description[:META_KEYWORD_SPAN])
        self.assertIn(KEYWORD, result.seo_title)
        self.assertEqual(len(result.tags), 10)

    def test_seo_title_moves_keyword_to_front(self):
        meta = SeoMetadata(seo_title="Complete guide to Solar Energy Brazil 2025")
        result = enforce_metadata(meta, KEYWORD)
        self.assertEqual(result.seo_title, "solar energy brazil 2025: Complete guide to")
        self.assertEqual(result.seo_title.count(KEYWORD), 1)

    def test_description_without_keyword_is_prefixed(self):
        meta = SeoMetadata(meta_description="Prices, regulation and incentives explained for homeowners.")
        result = enforce_metadata(meta, KEYWORD)
        self.assertTrue(result.meta_description.startswith(f"{KEYWORD}: Prices"))


class TestPrompts(unittest.TestCase):

    def test_body_prompt_reflects_options(self):
        builder = SEOPromptBuilder()
        author = Author(id="1", name="Dr. Ana Silva", bio="Energy researcher", expertise=["Energy"])
        prompt = builder.build_body_prompt(
            "Solar energy in Brazil", KEYWORD, ArticleStructure(title="Solar energy brazil 2025", lead="Lead"),
            CompetitiveAnalysis.default(), "800",
            AdvancedOptions(include_toc=False, include_glossary=True), "English", author,
        )
        self.assertIn("Do NOT add a table of contents", prompt)
        self.assertIn("glossary", prompt)
        self.assertIn("Dr. Ana Silva", prompt)
        self.assertIn('class="authority-references"', prompt)

    def test_structure_prompt_has_word_ceiling(self):
        prompt = SEOPromptBuilder(title_max_words=7).build_structure_prompt(
            "Solar", KEYWORD, CompetitiveAnalysis.default(), "English")
        self.assertIn("MAXIMUM 7 words", prompt)


class TestSchemaMarkupGenerator(unittest.TestCase):

    def setUp(self):
        self.generator = SchemaMarkupGenerator(site_name="Solar Blog")

    def test_graph_nodes(self):
        payload = self.generator.build(make_article())
        types = [node["@type"] for node in payload.structured_data["@graph"]]
        self.assertEqual(types[:5], ["Organization", "WebSite", "ImageObject", "BreadcrumbList", "Article"])
        self.assertIn("FAQPage", types)
        self.assertNotIn("VideoObject", types)
        self.assertIn('"@type": "Article"', payload.to_json_ld())

    def test_dates_and_permalink(self):
        graph = self.generator.build_graph(make_article())
        article_node = next(n for n in graph["@graph"] if n["@type"] == "Article")
        self.assertEqual(article_node["datePublished"], "2025-03-01T10:00:00+00:00")
        self.assertEqual(article_node["dateModified"], "2025-03-02T10:00:00+00:00")
        self.assertEqual(article_node["mainEntityOfPage"]["@id"], "https://blog.example.com/solar-energy-brazil-2025")
        self.assertEqual(article_node["inLanguage"], "en")

    def test_video_node_when_video_present(self):
        video = build_video_asset(KEYWORD, "https://youtu.be/dQw4w9WgXcQ", title="Solar 101")
        graph = self.generator.build_graph(make_article(video=video))
        video_node = next(n for n in graph["@graph"] if n["@type"] == "VideoObject")
        self.assertEqual(video_node["embedUrl"], "https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ")

    def test_deterministic(self):
        article = make_article()
        self.assertEqual(self.generator.build(article), self.generator.build(article))

    def test_post_payload(self):
        hero = ImageSpec(role="hero", aspect_ratio="16:9", prompt="p", rendered_url="data:image/png;base64,AAAA")
        post = self.generator.build_post_payload(make_article(image_specs=[hero]))
        self.assertEqual(post["status"], "draft")
        self.assertEqual(len(post["tags"]), 10)
        self.assertEqual(post["meta"]["_yoast_wpseo_focuskw"], KEYWORD)
        self.assertNotIn("_yoast_wpseo_opengraph-image", post["meta"])
        self.assertEqual(json.loads(post["meta"]["_yoast_wpseo_keywordsynonyms"]), [", ".join(
            make_article().seo_data.synonyms)])

    def test_faq_extraction(self):
        faqs = self.generator.extract_faq_from_content(make_article().html_content)
        self.assertEqual(faqs, [("Is solar worth it in Brazil?", "Yes, for most homes.")])

    def test_wrap_schema_in_script(self):
        script = self.generator.wrap_schema_in_script({"@context": "https://schema.org"})
        self.assertTrue(script.startswith('<script type="application/ld+json">'))


if __name__ == '__main__':
    unittest.main()
