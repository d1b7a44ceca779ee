from ..models.context import DEFAULT_CONTEXT_COLORS

MATCHING_PROMPT = """You match a person's saved insights ("thoughts") to an upcoming moment.

MOMENT: {moment_description}

THOUGHTS:
{thoughts_list}
{learned_section}
Weigh direct topical relevance, the context tag, and underlying principles.
Return a JSON array of at most 5 relevant thoughts with relevance of at least 0.5:
[{{"gem_id": "...", "relevance_score": 0.85, "relevance_reason": "..."}}]
Return [] when nothing applies. Respond with JSON only."""

LEARNED_SECTION = """
PREVIOUSLY HELPFUL for similar moments (favour these when they still fit):
{learned_list}
"""

CAPTURE_ANALYSIS_PROMPT = """Split the pasted content into items a person would want to keep.

Item types:
- "thought": a short, actionable insight or quote (under 200 characters)
- "note": longer reflection or commentary
- "source": a book, article or talk the content came from

Known contexts: {contexts_list}

Return JSON only:
{{"items": [{{"type": "thought", "content": "...", "source": "optional author or title"}}]}}"""

IMAGE_ANALYSIS_PROMPT = """Read the text in these images (screenshots, book pages, slides, handwriting)
and turn it into items a person would want to keep.

Item types: "thought" (short insight or quote), "note" (longer text),
"source" (a book or article title visible in the image).

Return JSON only:
{"items": [{"type": "thought", "content": "...", "source": "optional"}]}"""

SPLIT_CONTENT_PROMPT = """Separate the text into direct quotations from other people
and the writer's own reflections. Keep the original wording.

Return JSON only:
{"quotes": ["..."], "reflections": ["..."]}"""

DISCOVERY_SEARCH_PROMPT = """Search the web for content this person would find worth keeping.

THEIR CONTEXTS (slug: name):
{contexts_list}

SOME OF THEIR SAVED THOUGHTS:
{thoughts_list}

{focus}

Find {count} pieces from credible, named authors or reputable publications:
recent articles as well as lasting classics, practical over theoretical.
Skip listicles, content farms and hard paywalls. Do not repeat a source.

For each piece give one actionable takeaway (not a summary, at most 300
characters), the real title and a direct URL.

Return JSON only:
{{"discoveries": [{{"thought_content": "...", "source_title": "...", "source_url": "https://...",
"source_type": "article|video|research|blog", "article_summary": "two or three sentences",
"relevance_reason": "why it fits them", "content_type": "trending|evergreen",
"suggested_context_slug": "one of the slugs above"}}]}}"""

DISCOVERY_FALLBACK_PROMPT = """Recommend wisdom this person would find worth keeping. You have no web
access, so only cite books, frameworks, research and quotes you are certain
exist, with correct attribution. Never invent a URL: leave source_url empty
or write "book://Title by Author".

THEIR CONTEXTS (slug: name):
{contexts_list}

SOME OF THEIR SAVED THOUGHTS:
{thoughts_list}

{focus}

Recommend up to {count} sources across their contexts, each with one
actionable takeaway of at most 300 characters.

Return JSON only:
{{"discoveries": [{{"thought_content": "...", "source_title": "...", "source_url": "",
"source_type": "book|research|framework|quote", "article_summary": "why it is valuable",
"relevance_reason": "how it connects to them", "content_type": "evergreen",
"suggested_context_slug": "one of the slugs above"}}]}}"""

DEFAULT_CONTEXTS = ", ".join(DEFAULT_CONTEXT_COLORS)
