"""
Prompt templates for each article generation phase.

One builder per LangGraph node in nodes.py. Builders return
``(system_prompt, user_message)`` tuples for ``call_claude``.
"""

from batch_article_agent.state import JobSpec

TONE_GUIDES = {
    "polite": "calm, polite and reassuring",
    "friendly": "friendly and approachable, conversational",
    "professional": "expert, precise and logically structured",
}

AUDIENCE_GUIDES = {
    "beginner": "readers new to the topic; define jargon",
    "intermediate": "readers with working knowledge; skip the basics",
    "expert": "specialists; go deep and cite specifics",
}

WRITER_SYSTEM = (
    "You are an experienced SEO content writer for a blogging platform. "
    "Follow the requested output format exactly."
)


def _tone(spec: JobSpec) -> str:
    return TONE_GUIDES.get(spec.tone, spec.tone)


def _audience(spec: JobSpec) -> str:
    return AUDIENCE_GUIDES.get(spec.audience, spec.audience)


# ============================================================
# Article phases
# ============================================================


def analysis_prompt(spec: JobSpec) -> tuple[str, str]:
    user = (
        f"Keyword: {spec.keyword}\n\n"
        "Analyze what currently ranks for this keyword. Summarize search "
        "intent, the subtopics top results cover, gaps they leave, and "
        "related keywords worth targeting. Plain text, under 400 words."
    )
    return WRITER_SYSTEM, user


def outline_prompt(spec: JobSpec, analysis: str) -> tuple[str, str]:
    user = (
        f"Keyword: {spec.keyword}\n"
        f"Tone: {_tone(spec)}\n"
        f"Audience: {_audience(spec)}\n\n"
        f"SEO analysis:\n{analysis}\n\n"
        "Create an article outline. Respond with JSON only:\n"
        '{"title": "...", "meta_description": "max 120 chars", '
        '"introduction": "...", '
        '"sections": [{"heading": "...", "content": "key points"}], '
        '"faq": [{"question": "...", "answer": "..."}]}'
    )
    return WRITER_SYSTEM, user


def writing_prompt(spec: JobSpec, outline: dict) -> tuple[str, str]:
    sections = "\n".join(
        f"- {s.get('heading', '')}: {s.get('content', '')}" for s in outline.get("sections", [])
    )
    faq = "\n".join(f"- {q.get('question', '')}" for q in outline.get("faq", []))
    user = (
        f"Title: {outline.get('title', spec.keyword)}\n"
        f"Introduction idea: {outline.get('introduction', '')}\n"
        f"Sections:\n{sections}\n"
        f"FAQ:\n{faq}\n\n"
        f"Write the full article in Markdown, about {spec.target_length} characters. "
        f"Tone: {_tone(spec)}. Audience: {_audience(spec)}. "
        "Start with '# <title>'. Use '##' for sections and end with the FAQ."
    )
    return WRITER_SYSTEM, user


def claims_prompt(article: str, keyword: str) -> tuple[str, str]:
    user = (
        "Extract 3 to 5 concrete, verifiable claims (statistics, numbers, "
        "factual statements) from the article below.\n\n"
        f"Keyword: {keyword}\n\nArticle:\n{article[:3000]}\n\n"
        'Respond with JSON only: {"claims": ["claim 1", "claim 2"]}'
    )
    return "You are a meticulous fact-checker.", user


def verify_prompt(claim: str, evidence: str) -> tuple[str, str]:
    user = (
        f"Claim: {claim}\n\nEvidence from web search:\n{evidence}\n\n"
        "Judge the claim against the evidence. Respond with JSON only:\n"
        '{"verdict": "correct|incorrect|partially-correct|unverified", '
        '"confidence": "high|medium|low", '
        '"explanation": "about 2 sentences", '
        '"suggested_correction": "only when incorrect"}'
    )
    return "You are a meticulous fact-checker.", user


def image_prompt_prompt(title: str, article: str, theme: str) -> tuple[str, str]:
    user = (
        f"Article title: {title}\n"
        f"Article excerpt:\n{article[:1500]}\n"
        f"Visual theme: {theme or 'clean, modern illustration'}\n\n"
        "Write one English prompt for an eye-catching blog header image. "
        "No text or letters in the image. Output the prompt only."
    )
    return "You write prompts for image generation models.", user


def x_posts_prompt(spec: JobSpec, title: str, summary: str, audiences: list[str]) -> tuple[str, str]:
    user = (
        f"Keyword: {spec.keyword}\nTitle: {title}\nSummary: {summary}\n"
        f"Tone: {_tone(spec)}\n\n"
        f"Write one X (Twitter) post per target audience: {', '.join(audiences)}. "
        "Each post max 140 characters including 1-3 emoji and 2-4 hashtags, "
        "each with a different angle. Respond with JSON only:\n"
        '{"posts": [{"target": "...", "text": "..."}]}'
    )
    return "You are a social media marketer.", user
