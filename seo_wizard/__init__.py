"""SEO Wizard: Gemini-powered SEO article generation and WordPress publishing."""

__version__ = "1.0.0"
