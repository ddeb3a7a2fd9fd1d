"""
SEO Wizard - command line interface.
Generates SEO articles with Gemini (SERP analysis, structure, body, media, metadata,
schema JSON-LD) and sends them to WordPress as drafts.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .clients.gemini import GeminiClient
from .clients.wordpress import WordPressClient
from .config import PipelineConfig
from .editor import ArticleEditor
from .errors import WizardError, friendly_error_message
from .image_generator import ImageRenderer
from .pipeline import ArticlePipeline
from .schemas import AdvancedOptions, Author, GenerationRequest, SUPPORTED_RESOLUTIONS, WordPressConfig
from .seo_system import SchemaMarkupGenerator
from .storage import KeyValueStorage, WizardStore

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Commands that call Gemini
GEMINI_COMMANDS = {"generate", "render", "edit-image", "video"}


# --- INITIALIZATION ---
def initialize_system(config: Optional[PipelineConfig] = None, require_gemini: bool = True) -> Dict:
    """Build the store, clients, pipeline and editor."""
    config = config or PipelineConfig.from_env()
    store = WizardStore(KeyValueStorage(config.storage_file, config.storage_capacity_bytes))
    settings = store.get_settings()
    if settings.default_site_url:
        config.default_site_url = settings.default_site_url

    wp_config = WordPressConfig(
        endpoint=os.environ.get("WP_URL") or settings.wordpress.endpoint,
        username=os.environ.get("WP_USER") or settings.wordpress.username,
        application_password=os.environ.get("WP_APP_PASSWORD") or settings.wordpress.application_password,
    )
    wp_client = WordPressClient.from_config(wp_config) if wp_config.is_complete() else None
    schema = SchemaMarkupGenerator(config.site_name, config.default_site_url)

    gemini_client = pipeline = renderer = video_resolver = None
    if require_gemini:
        gemini_client = GeminiClient(config.require_api_key())
        pipeline = ArticlePipeline(gemini_client, store, config)
        renderer = pipeline.renderer
        video_resolver = pipeline.video_resolver
        logger.info("🤖 Gemini client ready")

    return {
        "config": config,
        "store": store,
        "settings": settings,
        "gemini": gemini_client,
        "pipeline": pipeline,
        "wp": wp_client,
        "editor": ArticleEditor(store, schema, renderer, video_resolver, wp_client),
    }


# --- COMMANDS ---

def run_generate(components: Dict, args) -> int:
    store = components["store"]
    settings = components["settings"]
    site_url = args.site_url or settings.default_site_url or None

    request = GenerationRequest(
        topic=args.topic,
        target_keyword=args.keyword,
        language=args.language,
        word_count=args.word_count,
        site_url=site_url,
        author_id=args.author_id,
        image_model=args.image_model or components["config"].model_image,
        image_resolution=args.resolution,
        advanced_options=AdvancedOptions(
            include_toc=not args.no_toc,
            include_glossary=args.glossary,
            include_tables=not args.no_tables,
            include_lists=not args.no_lists,
            secure_sources=not args.no_secure_sources,
            author_credits=not args.no_author_credits,
        ),
    )

    if args.site_url and args.site_url != settings.default_site_url:
        store.save_settings(settings.model_copy(update={"default_site_url": args.site_url}))

    article = components["pipeline"].run(request, progress=lambda step, pct: print(f"[{pct:>3}%] {step}"))
    print(f"\n✅ {article.title}\n   ID: {article.id}\n   Status: {article.status}")
    return 0


def run_list(components: Dict, args) -> int:
    articles = components["store"].get_articles()
    if not articles:
        print("No articles yet.")
    for article in articles:
        print(f"{article.id}  {article.status:<10}  {article.created_at[:10]}  {article.title or article.topic}")
    return 0


def run_show(components: Dict, args) -> int:
    article = components["store"].get_article(args.article_id)
    if article is None:
        logger.error(f"Article not found: {args.article_id}")
        return 1
    if args.json_ld:
        if article.technical_seo is None:
            print("{}")
        elif args.script:
            print(components["editor"].schema.wrap_schema_in_script(article.technical_seo.structured_data))
        else:
            print(article.technical_seo.to_json_ld())
    elif args.post_json:
        print(article.technical_seo.to_post_json() if article.technical_seo else "{}")
    elif args.html:
        print(article.html_content or "")
    else:
        print(article.model_dump_json(indent=2, exclude={"html_content", "technical_seo"}))
    return 0


def run_render(components: Dict, args) -> int:
    article = components["editor"].render_image(args.article_id, args.index, args.model, args.resolution)
    spec = article.image_specs[args.index]
    print(f"🖼️ {spec.role} ({spec.aspect_ratio}) rendered with {spec.model_used}")
    return 0


def run_edit_image(components: Dict, args) -> int:
    article = components["editor"].edit_image(args.article_id, args.index, args.instruction)
    print(f"🎨 {article.image_specs[args.index].role} image updated")
    return 0


def run_video(components: Dict, args) -> int:
    article = components["editor"].search_video(args.article_id, args.query)
    print(f"🎬 {article.video.title} ({article.video.canonical_url})")
    return 0


def run_publish(components: Dict, args) -> int:
    result = components["editor"].publish(args.article_id)
    print(f"🚀 Draft created (ID: {result['id']}): {result.get('link')}")
    return 0


def run_export_images(components: Dict, args) -> int:
    article = components["store"].get_article(args.article_id)
    if article is None:
        logger.error(f"Article not found: {args.article_id}")
        return 1
    exported = 0
    for spec in article.image_specs:
        if not spec.rendered_url.startswith("data:"):
            logger.info(f"Skipping {spec.role}: not rendered")
            continue
        path = ImageRenderer.save_image(spec.rendered_url, spec.filename or spec.role, args.directory)
        print(f"💾 {path}")
        exported += 1
    print(f"{exported} image(s) exported")
    return 0


def run_delete(components: Dict, args) -> int:
    if not components["editor"].delete(args.article_id):
        logger.error(f"Article not found: {args.article_id}")
        return 1
    return 0


def run_stats(components: Dict, args) -> int:
    stats = components["store"].stats()
    print(f"Articles: {stats['total']} ({stats['completed']} completed)")
    print(f"Average SEO score: {stats['avg_seo']}")
    print(f"Hours saved: {stats['hours_saved']}h")
    return 0


def run_authors(components: Dict, args) -> int:
    store = components["store"]
    if args.authors_command == "add":
        author = store.save_author(Author(
            name=args.name,
            bio=args.bio,
            photo_url=args.photo_url,
            expertise=[e.strip() for e in (args.expertise or "").split(",") if e.strip()],
        ))
        print(f"👤 Author saved: {author.id}  {author.name}")
        return 0
    if args.authors_command == "delete":
        if not store.delete_author(args.author_id):
            logger.error(f"Author not found: {args.author_id}")
            return 1
        return 0

    for author in store.get_authors():
        expertise = ", ".join(author.expertise)
        print(f"{author.id}  {author.name}" + (f"  ({expertise})" if expertise else ""))
    return 0


def run_settings(components: Dict, args) -> int:
    store = components["store"]
    settings = store.get_settings()

    wordpress = {
        field: value for field, value in (
            ("endpoint", args.wp_url),
            ("username", args.wp_user),
            ("application_password", args.wp_app_password),
        ) if value is not None
    }
    admin = {
        field: value for field, value in (("name", args.admin_name), ("role", args.admin_role))
        if value is not None
    }
    update = {}
    if wordpress:
        update["wordpress"] = settings.wordpress.model_copy(update=wordpress)
    if admin:
        update["admin_profile"] = settings.admin_profile.model_copy(update=admin)
    if args.site_url is not None:
        update["default_site_url"] = args.site_url

    if update:
        settings = settings.model_copy(update=update)
        store.save_settings(settings)
        logger.info("⚙️ Settings saved")

    shown = settings.model_dump(mode="json")
    if shown["wordpress"]["application_password"]:
        shown["wordpress"]["application_password"] = "********"
    print(json.dumps(shown, indent=2, ensure_ascii=False))
    return 0


COMMANDS = {
    "generate": run_generate,
    "list": run_list,
    "show": run_show,
    "render": run_render,
    "edit-image": run_edit_image,
    "video": run_video,
    "publish": run_publish,
    "export-images": run_export_images,
    "delete": run_delete,
    "stats": run_stats,
    "authors": run_authors,
    "settings": run_settings,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seo-wizard", description="SEO article generation wizard (Gemini + WordPress)")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a complete article")
    gen.add_argument("topic")
    gen.add_argument("keyword", help="Target keyword")
    gen.add_argument("--language", default="English")
    gen.add_argument("--word-count", choices=["800", "1500", "3000"], default="1500")
    gen.add_argument("--site-url", help="Your site, used for internal links and schema")
    gen.add_argument("--author-id")
    gen.add_argument("--image-model")
    gen.add_argument("--resolution", choices=SUPPORTED_RESOLUTIONS, default="1K")
    gen.add_argument("--no-toc", action="store_true", help="Skip the table of contents")
    gen.add_argument("--glossary", action="store_true", help="Add a glossary")
    gen.add_argument("--no-tables", action="store_true")
    gen.add_argument("--no-lists", action="store_true")
    gen.add_argument("--no-secure-sources", action="store_true")
    gen.add_argument("--no-author-credits", action="store_true")

    sub.add_parser("list", help="List stored articles")

    show = sub.add_parser("show", help="Show an article")
    show.add_argument("article_id")
    show_format = show.add_mutually_exclusive_group()
    show_format.add_argument("--json-ld", action="store_true", help="Print the schema JSON-LD")
    show_format.add_argument("--post-json", action="store_true", help="Print the WordPress payload")
    show_format.add_argument("--html", action="store_true", help="Print the article HTML")
    show.add_argument("--script", action="store_true", help="Wrap the JSON-LD in a <script> tag")

    render = sub.add_parser("render", help="Render one image of an article")
    render.add_argument("article_id")
    render.add_argument("index", type=int)
    render.add_argument("--model")
    render.add_argument("--resolution", choices=SUPPORTED_RESOLUTIONS)

    edit = sub.add_parser("edit-image", help="Edit a rendered image with an instruction")
    edit.add_argument("article_id")
    edit.add_argument("index", type=int)
    edit.add_argument("instruction")

    video = sub.add_parser("video", help="Search a video and embed it")
    video.add_argument("article_id")
    video.add_argument("query", nargs="?")

    publish = sub.add_parser("publish", help="Send an article to WordPress as a draft")
    publish.add_argument("article_id")

    export = sub.add_parser("export-images", help="Save rendered images to a directory")
    export.add_argument("article_id")
    export.add_argument("directory")

    delete = sub.add_parser("delete", help="Delete an article")
    delete.add_argument("article_id")

    sub.add_parser("stats", help="Show dashboard statistics")

    authors = sub.add_parser("authors", help="Manage article authors")
    authors_sub = authors.add_subparsers(dest="authors_command")
    authors_sub.add_parser("list", help="List authors")
    add_author = authors_sub.add_parser("add", help="Add an author")
    add_author.add_argument("name")
    add_author.add_argument("--bio", default="")
    add_author.add_argument("--photo-url", default="")
    add_author.add_argument("--expertise", help="Comma-separated expertise tags")
    delete_author = authors_sub.add_parser("delete", help="Delete an author")
    delete_author.add_argument("author_id")

    settings = sub.add_parser("settings", help="Show or update settings (WordPress credentials, default site)")
    settings.add_argument("--wp-url")
    settings.add_argument("--wp-user")
    settings.add_argument("--wp-app-password")
    settings.add_argument("--site-url", help="Default site URL")
    settings.add_argument("--admin-name")
    settings.add_argument("--admin-role")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(override=True)
    args = build_parser().parse_args(argv)

    try:
        components = initialize_system(require_gemini=args.command in GEMINI_COMMANDS)
        return COMMANDS[args.command](components, args)
    except ValidationError as e:
        logger.error(f"❌ Invalid input: {e}")
    except WizardError as e:
        logger.error(f"❌ {friendly_error_message(e)}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
