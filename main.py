"""
Entry point for the SEO Wizard.
Delegates to seo_wizard.main.
"""
import sys

from seo_wizard.main import main

if __name__ == "__main__":
    sys.exit(main())
